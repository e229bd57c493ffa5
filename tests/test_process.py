import sys

import pytest

from helm_optimize.process import pipe_commands, run_checked, run_command
from helm_optimize.types import ExecError, HelmError


def python(code):
    return [sys.executable, "-c", code]


def test_run_command_trims_one_trailing_newline():
    result = run_command(python("print('hello\\n')"))
    assert result.stdout == "hello\n"
    assert result.stderr == ""
    assert result.returncode == 0


def test_stderr_with_zero_exit_is_not_an_error():
    result = run_checked(python("import sys; sys.stderr.write('careful\\n')"))
    assert result.ok
    assert result.stderr == "careful"


def test_run_checked_raises_with_exit_status_and_stderr():
    with pytest.raises(ExecError) as exc_info:
        run_checked(python("import sys; sys.stderr.write('boom'); sys.exit(3)"))
    assert exc_info.value.exit_status == 3
    assert exc_info.value.stderr == "boom"


def test_run_checked_uses_requested_error_class():
    with pytest.raises(HelmError):
        run_checked(python("import sys; sys.exit(1)"), error_cls=HelmError)


def test_missing_executable_reports_status_127():
    result = run_command(["definitely-not-a-real-binary-xyz"])
    assert result.returncode == 127

    with pytest.raises(ExecError) as exc_info:
        run_checked(["definitely-not-a-real-binary-xyz"])
    assert exc_info.value.exit_status == 127


def test_input_text_is_passed_to_stdin():
    result = run_command(python("import sys; print(sys.stdin.read().upper())"), input_text="abc")
    assert result.stdout == "ABC"


def test_pipe_commands_feeds_producer_into_consumer():
    output = pipe_commands(
        python("print('one'); print('two')"),
        python("import sys; print(len(sys.stdin.read().splitlines()))"),
    )
    assert output == "2"


def test_pipe_commands_fails_when_consumer_fails():
    with pytest.raises(ExecError) as exc_info:
        pipe_commands(python("print('x')"), python("import sys; sys.exit(4)"))
    assert exc_info.value.exit_status == 4
