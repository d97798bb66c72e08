"""Action batch executor: validation, stop-at-first-failure and reporting."""

from conftest import FakeSite, page, button
from flowmapper.core.models import Action, ActionKind, ApplyResult, OutcomeStatus
from flowmapper.stages.batch_executor import ActionBatchExecutor


def make_site(**kwargs) -> FakeSite:
    return FakeSite({"http://app/": page(button("#a", "A"))}, **kwargs)


class RaisingSite(FakeSite):
    async def apply(self, action: Action) -> ApplyResult:
        if action.target == "#boom":
            raise TimeoutError("click timed out")
        return await super().apply(action)


class UnsettledSite(FakeSite):
    async def settle(self) -> None:
        raise TimeoutError("network never went idle")


async def test_all_actions_applied_in_order():
    site = make_site()
    executor = ActionBatchExecutor(site, settle_delay=0)

    report = await executor.execute([
        Action(kind=ActionKind.ENTER_TEXT, target="#name", text="Ada"),
        Action(kind=ActionKind.CHOOSE_OPTION, target="#role", value="admin"),
        Action(kind=ActionKind.ACTIVATE, target="#save"),
    ])

    assert report.succeeded
    assert [a.target for a in site.applied] == ["#name", "#role", "#save"]
    assert site.settle_calls == 1
    assert report.history_entry("/form") == (
        '[EXECUTE] Batch executed at /form: enter_text on #name with text "Ada"'
        ' → choose_option on #role with value "admin" → activate on #save.'
    )


async def test_first_failure_skips_the_rest():
    site = make_site(failing_targets={"#two"})
    executor = ActionBatchExecutor(site, settle_delay=0)

    report = await executor.execute([
        Action(kind=ActionKind.ACTIVATE, target="#one"),
        Action(kind=ActionKind.ACTIVATE, target="#two"),
        Action(kind=ActionKind.ACTIVATE, target="#three"),
    ])

    assert [o.status for o in report.outcomes] == [
        OutcomeStatus.APPLIED,
        OutcomeStatus.FAILED,
        OutcomeStatus.SKIPPED,
    ]
    assert [a.target for a in site.applied] == ["#one"]
    assert report.failed[0].reason == "element #two not found"
    assert not report.succeeded


async def test_target_exception_counts_as_action_failure():
    site = RaisingSite({"http://app/": page()})
    executor = ActionBatchExecutor(site, settle_delay=0)

    report = await executor.execute([Action(kind=ActionKind.ACTIVATE, target="#boom")])

    assert report.failed[0].reason == "TimeoutError: click timed out"


async def test_missing_parameters_fail_validation():
    site = make_site()
    executor = ActionBatchExecutor(site, settle_delay=0)

    report = await executor.execute([
        Action(kind=ActionKind.CHOOSE_OPTION, target="#role"),
        Action(kind=ActionKind.ACTIVATE, target="#never"),
    ])

    assert report.failed[0].reason == "missing required parameter 'value' for choose_option"
    assert report.skipped[0].target == "#never"
    assert site.applied == []


async def test_empty_text_is_allowed():
    site = make_site()
    report = await ActionBatchExecutor(site, settle_delay=0).execute([
        Action(kind=ActionKind.ENTER_TEXT, target="#q", text=""),
    ])

    assert report.succeeded


async def test_navigate_refused_unless_allowed():
    site = make_site()
    navigate = Action(kind=ActionKind.NAVIGATE, url="http://elsewhere/")

    refused = await ActionBatchExecutor(site, settle_delay=0).execute([navigate])
    allowed = await ActionBatchExecutor(site, settle_delay=0, allow_navigation=True).execute([navigate])

    assert not refused.succeeded
    assert allowed.succeeded


async def test_targets_are_sanitized_before_dispatch():
    site = make_site()
    executor = ActionBatchExecutor(site, settle_delay=0)

    await executor.execute([Action(kind=ActionKind.ACTIVATE, target="input[name='q'] data-x=1")])

    assert site.applied[0].target == 'input[name="q"]'


async def test_empty_batch_does_not_settle():
    site = make_site()
    report = await ActionBatchExecutor(site, settle_delay=0).execute([])

    assert report.outcomes == []
    assert site.settle_calls == 0


async def test_settle_error_keeps_the_report():
    site = UnsettledSite({"http://app/": page(button("#a", "A"))})
    executor = ActionBatchExecutor(site, settle_delay=0)

    report = await executor.execute([Action(kind=ActionKind.ACTIVATE, target="#a")])

    assert report.succeeded
    assert [o.status for o in report.outcomes] == [OutcomeStatus.APPLIED]
    assert report.history_entry("/").startswith("[EXECUTE] Batch executed at /: activate on #a")
