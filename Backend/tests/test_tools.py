import asyncio
import sys

import pytest

from homecinema.services.tools import ToolError, run_tool


def test_run_tool_returns_stdout():
    output = asyncio.run(run_tool([sys.executable, "-c", "print('hello')"], timeout=30))
    assert output.strip() == b"hello"


def test_run_tool_nonzero_exit():
    script = "import sys; sys.stderr.write('boom'); sys.exit(3)"
    with pytest.raises(ToolError) as exc_info:
        asyncio.run(run_tool([sys.executable, "-c", script], timeout=30))
    assert exc_info.value.returncode == 3
    assert exc_info.value.stderr == "boom"


def test_run_tool_missing_binary(tmp_path):
    with pytest.raises(ToolError):
        asyncio.run(run_tool([str(tmp_path / "missing-tool")], timeout=30))


def test_run_tool_timeout_stops_process():
    async def run():
        with pytest.raises(ToolError) as exc_info:
            await run_tool([sys.executable, "-c", "import time; time.sleep(30)"], timeout=0.5, grace=0.5)
        assert "timed out" in str(exc_info.value)
        # Give SIGTERM time to land before the loop closes
        await asyncio.sleep(0.2)

    asyncio.run(run())
