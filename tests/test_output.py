import pytest

from mobilekit.output import (
    CommandError,
    CommandFailed,
    CommandFailedWithOutput,
    InvalidUtf8,
    Output,
    OutputStream,
    SpawnFailed,
    WaitFailed,
)


def test_output_stream_names():
    assert str(OutputStream.OUT) == "stdout"
    assert str(OutputStream.ERR) == "stderr"
    output = Output("tool", 0, b"\xff", b"\xfe")
    with pytest.raises(InvalidUtf8) as out_info:
        output.stream_str(OutputStream.OUT)
    with pytest.raises(InvalidUtf8) as err_info:
        output.stream_str(OutputStream.ERR)
    assert str(out_info.value).startswith("stdout for command")
    assert str(err_info.value).startswith("stderr for command")


def test_successful_output_decodes_streams():
    output = Output("tool", 0, b"hi", b"warn")
    assert output.success()
    assert output.stdout_str() == "hi"
    assert output.stderr_str() == "warn"
    assert output.stream(OutputStream.ERR) == b"warn"
    assert output.stream(OutputStream.OUT) == b"hi"
    assert output.code == 0


def test_failed_output_not_success():
    output = Output("tool", 2, b"", b"")
    assert not output.success()
    assert output.status == 2


def test_signal_status_has_no_code():
    output = Output("tool", -9)
    assert output.code is None
    assert not output.success()


def test_invalid_utf8_raises_with_stream():
    output = Output("tool", 0, b"ok", b"\xff\xfe")
    with pytest.raises(InvalidUtf8) as info:
        output.stderr_str()
    assert info.value.stream is OutputStream.ERR
    assert info.value.command == "tool"
    assert str(info.value).startswith('stderr for command "tool" contained invalid UTF-8')


def test_command_failed_message_with_code():
    err = CommandFailed("cmd", 2)
    assert str(err) == 'Command "cmd" didn\'t complete successfully, exiting with code 2.'
    assert err.code == 2
    assert err.output is None
    assert err.stdout_str() is None


def test_command_failed_message_without_code():
    err = CommandFailed("cmd", -15)
    assert str(err).endswith("but returned no exit code.")
    assert err.code is None
    assert err.status == -15


def test_failed_with_output_reports_stderr():
    output = Output("cmd", 1, b"out", b"boom")
    err = CommandFailedWithOutput("cmd", output)
    assert str(err).endswith(" stderr contents: boom")
    assert err.stdout_str() == "out"
    assert err.stderr_str() == "boom"
    assert err.stdout == b"out"
    assert err.code == 1
    assert isinstance(err, CommandError)


def test_failed_with_output_empty_stderr():
    err = CommandFailedWithOutput("cmd", Output("cmd", 1))
    assert str(err).endswith(" stderr was empty.")
    assert err.stderr == b""


def test_io_errors_carry_cause():
    cause = OSError("nope")
    spawn = SpawnFailed("cmd", cause)
    wait = WaitFailed("cmd", cause)
    assert spawn.cause is cause
    assert "nope" in str(spawn)
    assert str(wait).startswith('Failed to wait for child process for command "cmd"')
    assert spawn.status is None
    assert wait.code is None