from behave import *

from counterfactual_sig.address import Address

# Use regular expressions
use_step_matcher("re")


@when("I parse the address strictly")
def when_parse_address_strictly(context):
    try:
        context.output = Address.from_str(context.input)
    except Exception as e:
        context.output = e


@when("I parse the address relaxed")
def when_parse_address_relaxed(context):
    try:
        context.output = Address.from_str_relaxed(context.input)
    except Exception as e:
        context.output = e


@when("I convert the address to a string")
def when_address_to_string(context):
    context.output = str(context.output)


@then("I should fail to parse the address")
def then_fail_address(context):
    assert isinstance(context.output, Exception)
