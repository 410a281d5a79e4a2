"""Tests for TerminalRegistry with real shells."""

import asyncio

import pytest

from taskterm.core.terminal import SpawnOutcome, TerminalRegistry

# Shell arithmetic makes the expected output differ from the echoed input
PRINT_42 = "echo $((40+2))\n"


async def spawn(registry, terminal_id="term-t1", cwd="/tmp", cols=80, rows=24, **kwargs):
    return await registry.spawn(terminal_id, cwd=cwd, cols=cols, rows=rows, **kwargs)


def content(registry, terminal_id="term-t1") -> str:
    buffer = registry.get_buffer(terminal_id)
    return buffer["content"] if buffer else ""


def state(registry, terminal_id="term-t1") -> str | None:
    return registry.is_alive(terminal_id).get("state")


class TestSpawn:
    """Tests for spawn semantics."""

    @pytest.mark.asyncio
    async def test_spawn_and_echo(self, registry, wait_until):
        assert await spawn(registry) is True
        assert registry.is_alive("term-t1") == {"exists": True, "state": "running", "exitCode": None}

        assert registry.write("term-t1", PRINT_42) is True
        await wait_until(lambda: "42" in content(registry))

    @pytest.mark.asyncio
    async def test_spawn_live_id_is_idempotent(self, registry):
        assert await spawn(registry) is True
        first = registry.list()

        assert await spawn(registry, cwd="/") is True

        assert registry.list() == first
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_concurrent_spawns_create_one_session(self, registry, listener, wait_until):
        results = await asyncio.gather(*(spawn(registry) for _ in range(5)))

        assert results == [True] * 5
        assert len(registry.list()) == 1

        registry.write("term-t1", "exit 0\n")
        await wait_until(lambda: state(registry) == "exited")
        await asyncio.sleep(0.1)
        assert listener.exits("term-t1") == [0]

    @pytest.mark.asyncio
    async def test_invalid_cwd_leaves_no_session(self, registry):
        assert await spawn(registry, cwd="/definitely/not/here") is False

        assert registry.is_alive("term-t1") == {"exists": False}
        assert registry.get_buffer("term-t1") is None
        assert registry.list() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("cols,rows", [(0, 24), (80, 0), (-5, 10)])
    async def test_invalid_dimensions(self, registry, cols, rows):
        assert await spawn(registry, cols=cols, rows=rows) is False
        assert registry.is_alive("term-t1") == {"exists": False}

    @pytest.mark.asyncio
    async def test_spawn_replaces_exited_session(self, registry, wait_until):
        await spawn(registry)
        registry.write("term-t1", "echo OLD$((1+1)); exit 4\n")
        await wait_until(lambda: state(registry) == "exited")
        assert "OLD2" in content(registry)

        assert await spawn(registry) is True

        assert state(registry) == "running"
        assert registry.is_alive("term-t1")["exitCode"] is None
        assert "OLD2" not in content(registry)

    @pytest.mark.asyncio
    async def test_spawn_with_prompt_runs_agent_then_shell(self, registry, wait_until):
        # agent_command is "echo agent" in the test config
        assert await spawn(registry, initial_prompt="hello-prompt", session_id="s-1") is True

        await wait_until(lambda: "agent --session-id s-1 hello-prompt" in content(registry))
        assert state(registry) == "running"

        registry.write("term-t1", PRINT_42)
        await wait_until(lambda: "42" in content(registry))


class TestExit:
    """Tests for exit handling."""

    @pytest.mark.asyncio
    async def test_exit_code_and_frozen_state(self, registry, listener, wait_until):
        await spawn(registry)
        registry.write("term-t1", "exit 3\n")
        await wait_until(lambda: state(registry) == "exited")

        assert registry.is_alive("term-t1") == {"exists": True, "state": "exited", "exitCode": 3}
        assert registry.get_buffer("term-t1")["exitCode"] == 3
        assert listener.exits("term-t1") == [3]

        # No-ops once exited
        assert registry.write("term-t1", "echo hi\n") is False
        assert registry.resize("term-t1", 100, 40) is False
        assert await registry.kill("term-t1") is False

    @pytest.mark.asyncio
    async def test_kill(self, registry, listener, wait_until):
        await spawn(registry)

        assert await registry.kill("term-t1") is True
        await wait_until(lambda: state(registry) == "exited")

        assert registry.is_alive("term-t1")["exitCode"] is not None
        assert len(listener.exits("term-t1")) == 1
        assert await registry.kill("term-t1") is False

    @pytest.mark.asyncio
    async def test_kill_during_spawn_terminates_new_process(self, registry, listener, wait_until):
        task = asyncio.create_task(spawn(registry))
        await asyncio.sleep(0)
        assert state(registry) == "spawning"

        assert await registry.kill("term-t1") is True
        assert await task is True

        await wait_until(lambda: state(registry) == "exited")
        assert len(listener.exits("term-t1")) == 1

    @pytest.mark.asyncio
    async def test_data_precedes_exit(self, registry, listener, wait_until):
        await spawn(registry)
        registry.write("term-t1", "echo A$((1+1)); exit 0\n")
        await wait_until(lambda: listener.exits("term-t1"))

        kinds = [kind for kind, tid, _ in listener.log if tid == "term-t1"]
        assert kinds[-1] == "exit"
        assert kinds.count("exit") == 1
        assert "A2" in listener.output("term-t1")

    @pytest.mark.asyncio
    async def test_buffer_equals_concatenated_events(self, registry, listener, wait_until):
        await spawn(registry)
        registry.write("term-t1", "i=0; while [ $i -lt 20 ]; do echo line$i; i=$((i+1)); done; exit 0\n")
        await wait_until(lambda: state(registry) == "exited")

        assert content(registry) == listener.output("term-t1")
        assert "line19" in content(registry)


class TestBufferCapacity:
    """Tests for bounded output."""

    @pytest.mark.asyncio
    async def test_buffer_keeps_most_recent_output(self, config, listener, wait_until):
        config.buffer_capacity = 300
        registry = TerminalRegistry(config=config, on_data=listener.on_data)
        try:
            await spawn(registry)
            registry.write(
                "term-t1",
                "i=0; while [ $i -lt 100 ]; do echo line$i; i=$((i+1)); done; echo F\"\"IN\n",
            )
            await wait_until(lambda: "FIN" in content(registry))

            buffered = content(registry)
            assert len(buffered) <= 300
            assert "line99" in buffered
            assert "line0\r" not in buffered
            assert buffered in listener.output("term-t1")
        finally:
            await registry.shutdown()


class TestNoOps:
    """Operations on unknown ids are harmless."""

    @pytest.mark.asyncio
    async def test_unknown_id(self, registry):
        assert registry.write("nope", "ls\n") is False
        assert registry.resize("nope", 80, 24) is False
        assert await registry.kill("nope") is False
        assert registry.get_buffer("nope") is None
        assert registry.is_alive("nope") == {"exists": False}
        assert await registry.cleanup("nope") is True

    @pytest.mark.asyncio
    async def test_resize_running(self, registry, wait_until):
        await spawn(registry)

        assert registry.resize("term-t1", 132, 50) is True
        assert registry.resize("term-t1", 0, 50) is False

        registry.write("term-t1", "stty size\n")
        await wait_until(lambda: "50 132" in content(registry))


class TestCleanup:
    """Tests for cleanup."""

    @pytest.mark.asyncio
    async def test_cleanup_running_terminal(self, registry, listener):
        await spawn(registry)

        assert await registry.cleanup("term-t1") is True
        await asyncio.sleep(0.2)

        assert registry.is_alive("term-t1") == {"exists": False}
        assert registry.get_buffer("term-t1") is None
        assert listener.exits("term-t1") == []

    @pytest.mark.asyncio
    async def test_shutdown_destroys_everything(self, registry):
        await spawn(registry, "term-a")
        await spawn(registry, "term-b")

        await registry.shutdown()

        assert registry.list() == []


class TestRunningTasks:
    """Tests for running_task_ids."""

    @pytest.mark.asyncio
    async def test_only_running_task_terminals(self, registry, wait_until):
        await spawn(registry, "term-alpha")
        await spawn(registry, "term-beta")
        await spawn(registry, "scratch")

        registry.write("term-beta", "exit 0\n")
        await wait_until(lambda: state(registry, "term-beta") == "exited")

        assert registry.running_task_ids() == {"alpha"}


class TestSpawnOutcome:
    """Tests for spawn_terminal outcomes."""

    @pytest.mark.asyncio
    async def test_outcomes(self, registry, wait_until):
        def spawn_t1():
            return registry.spawn_terminal("term-t1", cwd="/tmp", cols=80, rows=24)

        assert await spawn_t1() is SpawnOutcome.CREATED
        assert await spawn_t1() is SpawnOutcome.REATTACHED

        registry.write("term-t1", "exit 0\n")
        await wait_until(lambda: state(registry) == "exited")
        assert await spawn_t1() is SpawnOutcome.CREATED

        outcome = await registry.spawn_terminal("term-t2", cwd="/definitely/not/here", cols=80, rows=24)
        assert outcome is SpawnOutcome.FAILED


class TestLocks:
    """Per-id locks exist only while an operation holds or awaits them."""

    @pytest.mark.asyncio
    async def test_locks_released_after_lifecycle(self, registry):
        for n in range(5):
            await spawn(registry, f"term-l{n}")
            await registry.kill(f"term-l{n}")
            await registry.cleanup(f"term-l{n}")

        assert registry.lock_count == 0
        assert registry.list() == []

    @pytest.mark.asyncio
    async def test_locks_released_after_concurrent_spawns(self, registry):
        await asyncio.gather(*(spawn(registry) for _ in range(5)), registry.kill("term-t1"))

        assert registry.lock_count == 0
