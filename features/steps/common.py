import typing

from behave import given, then, use_step_matcher

from counterfactual_sig.address import Address

# Use regular expressions
use_step_matcher("re")


@given(r"(?P<input_type>[a-zA-Z0-9]+) (?P<input_value>\S+)")
def given_input(context: typing.Any, input_type: str, input_value: str):
    if input_type == "bool":
        context.input = parse_bool(input_value)
    elif input_type == "u8":
        context.input = int(input_value)
    elif input_type == "address":
        context.input = Address.from_str_relaxed(input_value)
    elif input_type == "bytes":
        context.input = parse_hex(input_value)
    elif input_type == "string":
        context.input = parse_string(input_value)
    else:
        raise Exception("Unrecognized input type")


@then(r"the result should be (?P<expected_type>[a-zA-Z0-9]+) (?P<expected_value>\S+)")
def then_result(context: typing.Any, expected_type: str, expected_value: str):
    expected_val = parse_value(expected_type, expected_value)
    assert context.output == expected_val, (
        "Expected " + str(expected_value) + " but got " + str(context.output)
    )


def parse_value(value_type: str, value: str) -> typing.Any:
    if value_type == "bool":
        return parse_bool(value)
    if value_type == "address":
        return Address.from_str_relaxed(value)
    if value_type == "bytes":
        return parse_hex(value)
    if value_type == "string":
        return parse_string(value)
    if value_type == "u8":
        return int(value)
    raise Exception("Unrecognized value type")


def parse_hex(input_value: str):
    return bytes.fromhex(input_value.removeprefix("0x"))


def parse_bool(input_value: str):
    return input_value == "true"


def parse_string(input_value: str):
    return input_value.removeprefix('"').removesuffix('"')
