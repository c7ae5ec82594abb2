import pytest

from vsesync.clients.command import Cmd, CmdGroup, CommandError


def test_new_cmd_builds_full_command():
    cmd = Cmd("TestKey", "Hello This is a test")
    assert cmd.full_command == "echo '<TestKey>';Hello This is a test;echo '</TestKey>';"


def test_trailing_semicolon_not_doubled():
    cmd = Cmd("k", "ls;")
    assert cmd.full_command == "echo '<k>';ls;echo '</k>';"


def test_empty_command_rejected():
    with pytest.raises(ValueError):
        Cmd("k", "")


def test_valid_result_is_parsed():
    expected = "I am the correct answer"
    key = "TestKey"
    cmd = Cmd(key, "Hello This is a test")
    result = cmd.extract_result(f"<{key}>\n{expected}\n</{key}>\n")
    assert result == {key: expected}


def test_invalid_result_raises():
    cmd = Cmd("TestKey", "Hello This is a test")
    with pytest.raises(CommandError):
        cmd.extract_result("<SomethingElse>\nI am not the correct answer\n</SomethingElse>\n")


def test_output_processor_is_used():
    part1 = "I am part"
    part2 = "of the correct answer"
    key = "TestKey"
    cmd = Cmd(key, "Hello This is a test", output_processor=lambda p1: p1 + part2)
    result = cmd.extract_result(f"<{key}>\n{part1}\n</{key}>\n")
    assert result[key] == part1 + part2


def test_failing_output_processor_raises():
    def broken(value):
        raise ValueError("bad")

    cmd = Cmd("k", "x", output_processor=broken)
    with pytest.raises(CommandError):
        cmd.extract_result("<k>\nvalue\n</k>")


def test_group_command_concatenates():
    cmd = Cmd("TestKey", "Hello This is a test")
    group = CmdGroup()
    group.add_command(cmd)
    assert group.full_command == cmd.full_command

    cmd2 = Cmd("TestKey2", "This is another test goodbye.")
    group.add_command(cmd2)
    assert group.full_command == cmd.full_command + cmd2.full_command
    assert len(group) == 2


def test_group_extracts_all_keys():
    key1, key2 = "TestKey", "TestKey2"
    answer1, answer2 = "Result of key1", "Result of key2"
    group = CmdGroup()
    group.add_command(Cmd(key1, "Hello This is a test"))
    group.add_command(Cmd(key2, "This is another test goodbye."))
    result = group.extract_result(
        f"<{key1}>\n{answer1}\n</{key1}>\n<{key2}>\n{answer2}\n</{key2}>\n"
    )
    assert result[key1] == answer1
    assert result[key2] == answer2


def test_group_missing_key_raises():
    group = CmdGroup([Cmd("a", "x"), Cmd("b", "y")])
    with pytest.raises(CommandError):
        group.extract_result("<a>\n1\n</a>\n")