from behave import given, when, then

from rolling_upgrade.bench.assert_engine import assert_not_equal
from rolling_upgrade.bench.errors import AssertionFailure
from rolling_upgrade.bench.types import Token


def _token(context, name: str) -> Token:
    if name not in context.tokens:
        raise AssertionFailure(f"no token named {name!r} in this scenario (have: {sorted(context.tokens)})")
    return context.tokens[name]


def _upgraded_probe(context):
    if context.upgraded_client is None:
        raise AssertionFailure("no client for the target version nodes was created in this scenario")
    return context.probe.with_client(context.upgraded_client)


@given("the elected master runs the target version")
def step_master_on_target_version(context):
    if not context.nodes.is_master_on_version(context.settings.target_version):
        context.scenario.skip("the master must be on the latest version before we can write")


@given("the security index template has been upgraded")
def step_template_upgraded(context):
    context.watcher.await_template_upgraded(context.settings.target_version)


@given('the token "{name}" is read from slot "{slot}"')
def step_read_persisted_token(context, name, slot):
    context.tokens[name] = Token(access_token=context.store.get(slot))


@given("a client for the nodes on the target version")
def step_upgraded_client(context):
    context.upgraded_client = context.nodes.client_for_version(context.settings.target_version)


@when('I issue a token named "{name}" without requiring a refresh token')
def step_issue_token_without_refresh(context, name):
    context.tokens[name] = context.probe.issue(expect_refresh_token=False)


@when('I issue a token named "{name}" on the target version nodes')
def step_issue_token_on_upgraded_nodes(context, name):
    context.tokens[name] = _upgraded_probe(context).issue()


@when('I issue a token named "{name}"')
def step_issue_token(context, name):
    context.tokens[name] = context.probe.issue()


@when('I persist the token "{name}" into slot "{slot}"')
def step_persist_token(context, name, slot):
    context.store.put(slot, _token(context, name).access_token)


@when('I invalidate the token "{name}" again')
def step_invalidate_token_again(context, name):
    context.probe.invalidate(_token(context, name).access_token, error_trace=True)


@when('I invalidate the token "{name}"')
def step_invalidate_token(context, name):
    context.probe.invalidate(_token(context, name).access_token)


@when('I refresh the token "{name}" into "{new_name}" on the target version nodes')
def step_refresh_token_on_upgraded_nodes(context, name, new_name):
    context.tokens[new_name] = _upgraded_probe(context).refresh(_token(context, name))


@when('I refresh the token "{name}" into "{new_name}"')
def step_refresh_token(context, name, new_name):
    context.tokens[new_name] = context.probe.refresh(_token(context, name))


@then('the token "{name}" works')
def step_token_works(context, name):
    context.probe.verify_works(_token(context, name).access_token)


@then('the token "{name}" is rejected')
def step_token_rejected(context, name):
    context.probe.verify_rejected(_token(context, name).access_token)


@then('the tokens "{first}" and "{second}" differ')
def step_tokens_differ(context, first, second):
    a, b = _token(context, first), _token(context, second)
    assert_not_equal(a.access_token, b.access_token, "access tokens")
    assert_not_equal(a.refresh_token, b.refresh_token, "refresh tokens")
