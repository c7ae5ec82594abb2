import pytest

from vsesync.clients.command import Cmd, CommandError, ExecContext
from vsesync.devices.common import (
    date_command,
    format_timestamp_rfc3339nano,
    parse_timestamp,
    run_commands,
)


class FakeContext(ExecContext):
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def exec_command(self, command):
        raise AssertionError("unexpected exec_command")

    def exec_command_stdin(self, command, stdin):
        self.calls.append((list(command), stdin))
        return self.responses[stdin], ""


def test_parse_timestamp_nanoseconds():
    assert parse_timestamp("1686916187.0584") == 1686916187058400000


def test_parse_timestamp_ignores_surrounding_space():
    assert parse_timestamp(" 1686916187.0584\n") == parse_timestamp("1686916187.0584")


@pytest.mark.parametrize("bad", ["", "abc", "12.3.4", "1.x"])
def test_parse_timestamp_rejects_garbage(bad):
    with pytest.raises(ValueError):
        parse_timestamp(bad)


def test_format_timestamp():
    assert format_timestamp_rfc3339nano("1686916187.0584") == "2023-06-16T11:49:47.0584Z"


def test_format_whole_seconds_has_no_fraction():
    assert format_timestamp_rfc3339nano("1686916187") == "2023-06-16T11:49:47Z"
    assert format_timestamp_rfc3339nano("1686916187.000") == "2023-06-16T11:49:47Z"


def test_date_command_string():
    assert date_command().full_command == "echo '<date>';date +%s.%N;echo '</date>';"
    assert date_command() is date_command()


def test_date_command_extracts_formatted_date():
    result = date_command().extract_result("<date>\n1686916187.0584\n</date>\n")
    assert result == {"date": "2023-06-16T11:49:47.0584Z"}


def test_run_commands_merges_post_processed_values():
    cmds = [date_command(), Cmd("name", "cat name", output_processor=str.strip)]
    script = "echo '<date>';date +%s.%N;echo '</date>';echo '<name>';cat name;echo '</name>';"
    ctx = FakeContext(
        {script: "<date>\n1686916187.0584\n</date>\n<name>\n  eth0  \n</name>\n"}
    )
    result = run_commands(ctx, cmds, lambda raw: {"upper": raw["name"].upper()})
    assert result == {
        "date": "2023-06-16T11:49:47.0584Z",
        "name": "eth0",
        "upper": "ETH0",
    }
    assert ctx.calls == [(["/usr/bin/sh"], script)]


def test_run_commands_missing_output_raises():
    cmd = Cmd("name", "cat name")
    ctx = FakeContext({cmd.full_command: "nothing useful"})
    with pytest.raises(CommandError):
        run_commands(ctx, [cmd])