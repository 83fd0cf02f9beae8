"""Integration tests for BarrierController.

Most runs use the in-memory network from ``conftest.py`` so several hosts can
share one port inside a single process.  The loopback test at the end uses
real UDP sockets on distinct 127.0.0.x addresses.
"""

from __future__ import annotations

import socket
import sys
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List

import pytest

from hostbarrier.config import BarrierConfig
from hostbarrier.controller import BarrierController
from hostbarrier.errors import (
    BarrierError,
    BarrierTimeoutError,
    ConfigError,
    EmptyPeerSetError,
    SocketError,
)
from hostbarrier.metrics import BarrierMetrics
from hostbarrier.types import BarrierResult, BarrierState

if TYPE_CHECKING:
    from pytest_mock.plugin import MockerFixture

    from conftest import MemoryNetwork

HOSTS = ["a", "b", "c"]


def run_cohort(controllers: List[BarrierController]) -> Dict[str, object]:
    """Run every controller on its own thread and collect results or errors."""
    outcomes: Dict[str, object] = {}

    def target(controller: BarrierController) -> None:
        try:
            outcomes[controller.self_id] = controller.run()
        except BaseException as exc:  # noqa: BLE001 - reported by the test
            outcomes[controller.self_id] = exc

    threads = [threading.Thread(target=target, args=(c,)) for c in controllers]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30.0)
    return outcomes


def make_controller(
    network: "MemoryNetwork", host: str, membership, config: BarrierConfig
) -> BarrierController:
    return BarrierController(
        membership, host, config, transport_factory=lambda _name: network.transport(host)
    )


def test_three_hosts_reach_the_barrier(network: "MemoryNetwork", fast_config: BarrierConfig) -> None:
    for host in HOSTS:
        network.add_host(host)
    controllers = [make_controller(network, host, HOSTS, fast_config) for host in HOSTS]

    outcomes = run_cohort(controllers)

    for controller in controllers:
        result = outcomes[controller.self_id]
        assert isinstance(result, BarrierResult), result
        assert result.state is BarrierState.DONE
        assert len(result.peers) == 2
        assert controller.self_id not in result.peers
        assert result.ready == result.peers
        assert controller.state is BarrierState.DONE
        # Announcing continues after local quorum
        assert result.stats["rounds"] == fast_config.max_attempts


def test_late_starter_still_joins(network: "MemoryNetwork", fast_config: BarrierConfig) -> None:
    """A host that starts a few rounds late is still announced to."""
    for host in HOSTS:
        network.add_host(host)
    early = [make_controller(network, host, HOSTS, fast_config) for host in ("a", "b")]
    late = make_controller(network, "c", HOSTS, fast_config)
    outcomes: Dict[str, object] = {}

    def start_late() -> None:
        try:
            outcomes["c"] = late.run()
        except BarrierError as exc:
            outcomes["c"] = exc

    timer = threading.Timer(0.06, start_late)
    timer.start()
    outcomes.update(run_cohort(early))
    timer.join(timeout=30.0)

    assert all(isinstance(outcomes[h], BarrierResult) for h in HOSTS), outcomes


def test_missing_peer_times_out(network: "MemoryNetwork") -> None:
    network.add_host("a")
    network.add_host("b")
    config = BarrierConfig(
        max_attempts=100,
        retry_interval_ms=10,
        receive_poll_interval_ms=10,
        overall_timeout_ms=200,
    )
    controller = make_controller(network, "a", ["a", "b"], config)

    with pytest.raises(BarrierTimeoutError) as excinfo:
        controller.run()

    assert excinfo.value.missing == frozenset({"b"})
    assert isinstance(excinfo.value, TimeoutError)
    assert controller.state is BarrierState.FAILED
    # The deadline also cut the announce rounds short
    assert controller.metrics.get_stats()["rounds"] < 100


def test_unreadable_hostfile_fails_before_any_socket(
    tmp_path: Path, mocker: "MockerFixture"
) -> None:
    factory = mocker.Mock()
    controller = BarrierController(tmp_path / "missing", "a", BarrierConfig(), transport_factory=factory)

    with pytest.raises(ConfigError):
        controller.run()

    assert controller.state is BarrierState.FAILED
    assert controller.quorum is None
    factory.assert_not_called()


def test_nobody_else_listed_fails(mocker: "MockerFixture") -> None:
    controller = BarrierController(["a"], "a", BarrierConfig(), transport_factory=mocker.Mock())

    with pytest.raises(EmptyPeerSetError):
        controller.run()

    assert controller.state is BarrierState.FAILED


def test_port_in_use_is_fatal(network: "MemoryNetwork", fast_config: BarrierConfig) -> None:
    network.add_host("a")
    network.add_host("b")
    squatter = network.transport("a")
    squatter.bind("0.0.0.0", fast_config.port)
    controller = make_controller(network, "a", ["a", "b"], fast_config)

    with pytest.raises(SocketError):
        controller.run()

    assert controller.state is BarrierState.FAILED
    assert network.sent == []


def test_send_channel_failure_closes_bound_listener(
    network: "MemoryNetwork", fast_config: BarrierConfig, mocker: "MockerFixture"
) -> None:
    network.add_host("a")
    network.add_host("b")
    recv = network.transport("a")
    send = network.transport("a")
    mocker.patch.object(send, "open", side_effect=SocketError("socket creation failed: Too many open files"))
    transports = {"a-recv": recv, "a-send": send}
    controller = BarrierController(["a", "b"], "a", fast_config, transport_factory=transports.__getitem__)

    with pytest.raises(SocketError, match="Too many open files"):
        controller.run()

    assert controller.state is BarrierState.FAILED
    assert recv.closed and send.closed
    # The barrier port is free again
    assert network.transport("a").bind("0.0.0.0", fast_config.port) == fast_config.port
    assert network.sent == []


@pytest.mark.parametrize(
    "membership, match",
    [
        (["a", "", "b"], "blank entry"),
        (["a", "b", "b"], "duplicate entry"),
    ],
)
def test_strict_membership_setting_rejects_entries(
    membership, match, mocker: "MockerFixture"
) -> None:
    factory = mocker.Mock()
    config = BarrierConfig(strict_membership=True)
    controller = BarrierController(membership, "a", config, transport_factory=factory)

    with pytest.raises(ConfigError, match=match):
        controller.run()

    assert controller.state is BarrierState.FAILED
    factory.assert_not_called()


def test_listener_crash_is_reported_not_cancelled(
    network: "MemoryNetwork", mocker: "MockerFixture"
) -> None:
    network.add_host("a")
    network.add_host("b")
    recv = network.transport("a")
    mocker.patch.object(recv, "receive", side_effect=RuntimeError("receive loop crashed"))
    transports = {"a-recv": recv, "a-send": network.transport("a")}
    config = BarrierConfig(max_attempts=3, retry_interval_ms=10, receive_poll_interval_ms=10)
    controller = BarrierController(["a", "b"], "a", config, transport_factory=transports.__getitem__)

    with pytest.raises(RuntimeError, match="receive loop crashed"):
        controller.run()

    assert controller.state is BarrierState.FAILED
    assert recv.closed


def test_interrupted_run_releases_the_port_before_returning(
    network: "MemoryNetwork", fast_config: BarrierConfig, mocker: "MockerFixture"
) -> None:
    network.add_host("a")
    network.add_host("b")
    recv = network.transport("a")
    send = network.transport("a")
    mocker.patch.object(send, "send_to", side_effect=KeyboardInterrupt)
    transports = {"a-recv": recv, "a-send": send}
    controller = BarrierController(["a", "b"], "a", fast_config, transport_factory=transports.__getitem__)

    with pytest.raises(KeyboardInterrupt):
        controller.run()

    assert controller.state is BarrierState.FAILED
    assert recv.closed
    assert network.transport("a").bind("0.0.0.0", fast_config.port) == fast_config.port


def test_time_to_quorum_is_measured_from_run(network: "MemoryNetwork", fast_config: BarrierConfig) -> None:
    for host in HOSTS:
        network.add_host(host)
    controllers = []
    for host in HOSTS:
        metrics = BarrierMetrics()
        # Pretend the controller sat idle for an hour before run()
        metrics.started_at -= 3600
        controllers.append(
            BarrierController(
                HOSTS, host, fast_config,
                transport_factory=lambda _name, h=host: network.transport(h),
                metrics=metrics,
            )
        )

    outcomes = run_cohort(controllers)

    for host in HOSTS:
        result = outcomes[host]
        assert isinstance(result, BarrierResult), result
        assert result.stats["time_to_quorum"] < 60


def test_external_cancel(network: "MemoryNetwork") -> None:
    network.add_host("a")
    network.add_host("b")
    config = BarrierConfig(max_attempts=100, retry_interval_ms=10, receive_poll_interval_ms=10)
    controller = make_controller(network, "a", ["a", "b"], config)
    threading.Timer(0.05, controller.cancel).start()

    with pytest.raises(BarrierError, match="cancelled"):
        controller.run()

    assert controller.state is BarrierState.FAILED


def test_controller_runs_once(mocker: "MockerFixture") -> None:
    controller = BarrierController(["a"], "a", BarrierConfig(), transport_factory=mocker.Mock())
    with pytest.raises(EmptyPeerSetError):
        controller.run()

    with pytest.raises(BarrierError, match="only run once"):
        controller.run()


def _free_udp_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.mark.skipif(not sys.platform.startswith("linux"), reason="needs the whole 127.0.0.0/8 on lo")
def test_loopback_cohort_over_udp(tmp_path: Path) -> None:
    hosts = ["127.0.0.1", "127.0.0.2", "127.0.0.3"]
    hostfile = tmp_path / "hosts"
    hostfile.write_text("\n".join(hosts) + "\n", encoding="utf-8")
    port = _free_udp_port()

    controllers = [
        BarrierController(
            hostfile,
            host,
            BarrierConfig(
                port=port,
                bind_address=host,
                max_attempts=20,
                retry_interval_ms=50,
                receive_poll_interval_ms=50,
                overall_timeout_ms=10000,
            ),
        )
        for host in hosts
    ]

    outcomes = run_cohort(controllers)

    for host in hosts:
        result = outcomes[host]
        assert isinstance(result, BarrierResult), result
        assert result.ready == frozenset(h for h in hosts if h != host)
