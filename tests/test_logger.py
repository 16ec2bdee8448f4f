import io
from datetime import datetime

import pytest

from honk.logger import NopLogger, StdLogger, get_logger, set_logger


@pytest.fixture
def restore_logger():
    saved = get_logger()
    yield
    set_logger(saved)


def test_printf_formats_and_prefixes_timestamp():
    stream = io.StringIO()
    StdLogger(stream).printf("applied %s in %d ms", "00001_init.sql", 12)
    output = stream.getvalue()
    stamp, separator, message = output[:19], output[19], output[20:]
    assert message == "applied 00001_init.sql in 12 ms\n"
    assert separator == " "
    parsed = datetime.strptime(stamp, "%Y/%m/%d %H:%M:%S")
    assert parsed.strftime("%Y/%m/%d %H:%M:%S") == stamp


def test_printf_without_args_keeps_percent():
    stream = io.StringIO()
    StdLogger(stream).printf("100% done")
    assert stream.getvalue().endswith("100% done\n")


def test_printf_does_not_double_newline():
    stream = io.StringIO()
    StdLogger(stream).printf("line\n")
    assert stream.getvalue().count("\n") == 1


def test_fatalf_writes_and_exits():
    stream = io.StringIO()
    with pytest.raises(SystemExit) as info:
        StdLogger(stream).fatalf("boom %s", "now")
    assert info.value.code == 1
    assert stream.getvalue().endswith("boom now\n")


def test_default_stream_is_stderr(capsys):
    StdLogger().printf("to stderr")
    captured = capsys.readouterr()
    assert captured.err.endswith("to stderr\n")
    assert captured.out == ""


def test_nop_logger_is_silent(capsys):
    logger = NopLogger()
    assert logger.printf("hidden %s", "x") is None
    assert logger.fatalf("hidden") is None
    captured = capsys.readouterr()
    assert captured.err == ""
    assert captured.out == ""


def test_set_and_get_logger(restore_logger):
    nop = NopLogger()
    set_logger(nop)
    assert get_logger() is nop