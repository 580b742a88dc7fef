import asyncio

from behave import given, then, when

from bastion_harness.discovery.outputs import OutputDirectory
from bastion_harness.discovery.stack import fetch_stack_outputs, testing_stack_name
from bastion_harness.run.harness_runner import HarnessRunner
from bastion_harness.suites.definitions import load_catalog_suite
from bastion_harness.suites.driver import SuiteDriver


def _runner(context) -> HarnessRunner:
    driver = SuiteDriver(
        channel=context.channel,
        poller=context.poller,
        directory=context.directory,
        command_timeout=context.settings.command_timeout,
        region=context.settings.region,
    )
    return HarnessRunner(driver, result_sink=context.result_sink)


@given('the "{catalog_name}" suite is loaded')
def step_load_suite(context, catalog_name):
    context.suite = load_catalog_suite(catalog_name)


@given("the testing stack outputs are resolved")
def step_resolve_outputs(context):
    stack_name = testing_stack_name(context.suite.code, context.settings.stack_tag)
    outputs = fetch_stack_outputs(context.cloudformation, stack_name)
    context.directory = OutputDirectory.resolve(outputs, context.suite.code)
    # Fails fast when the bastion never made it into the outputs.
    context.directory.host_id()


@when("I run the suite for index {index:d}")
def step_run_one(context, index):
    context.run_result = asyncio.run(_runner(context).run(context.suite, [index]))


@when("I run every suite variant")
def step_run_all(context):
    context.run_result = asyncio.run(_runner(context).run(context.suite))


@then("every suite should complete its teardown")
def step_teardown_clean(context):
    for report in context.run_result.reports:
        assert report.teardown_error is None, f"{report.code}{report.suite_index} teardown: {report.teardown_error}"


@then("every assertion should match")
def step_all_matched(context):
    failures = []
    for report in context.run_result.reports:
        if report.error:
            failures.append(f"{report.code}{report.suite_index}: {report.error}")
        for result in report.results:
            if not result.matched:
                failures.append(f"{result.test_id}: {result.error or repr(result.raw_output)}")
    assert not failures, "Failed checks:\n" + "\n".join(failures)
