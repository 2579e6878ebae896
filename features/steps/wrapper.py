import typing

from behave import then, use_step_matcher, when

from counterfactual_sig.address import Address
from counterfactual_sig.wrapper import (
    DeploymentDescriptor,
    decode_wrapped,
    encode_wrapped,
    has_magic_marker,
)

# Use regular expressions
use_step_matcher("re")


def parse_hex(input_value: str) -> bytes:
    return bytes.fromhex(input_value.removeprefix("0x"))


@when(
    r"I wrap the input for factory (?P<factory>\S+) with call input (?P<call_input>\S+)"
)
def when_wrap(context: typing.Any, factory: str, call_input: str):
    deployment = DeploymentDescriptor(Address.from_str(factory), parse_hex(call_input))
    context.output = encode_wrapped(deployment, context.input)


@when(r"I unwrap the input")
def when_unwrap(context: typing.Any):
    try:
        context.output = decode_wrapped(context.input)
    except Exception as e:
        context.output = e


@when(r"I check the input for the marker")
def when_check_marker(context: typing.Any):
    context.output = has_magic_marker(context.input)


@then(r"the factory should be address (?P<expected>\S+)")
def then_factory(context: typing.Any, expected: str):
    assert context.output.deployment.factory_address == Address.from_str_relaxed(
        expected
    ), f"Expected factory {expected} but got {context.output.deployment.factory_address}"


@then(r"the call input should be bytes (?P<expected>\S+)")
def then_call_input(context: typing.Any, expected: str):
    actual = context.output.deployment.factory_call_input
    assert actual == parse_hex(expected), f"Expected {expected} but got 0x{actual.hex()}"


@then(r"the inner signature should be bytes (?P<expected>\S+)")
def then_inner_signature(context: typing.Any, expected: str):
    actual = context.output.inner_signature
    assert actual == parse_hex(expected), f"Expected {expected} but got 0x{actual.hex()}"


@then(r"unwrapping should fail")
def then_unwrap_fails(context: typing.Any):
    assert isinstance(context.output, Exception)
