from __future__ import annotations

import pytest

from spinwick.services.clusters import CLUSTER_READY_MESSAGE, CLUSTER_WAIT_MESSAGE, ClusterProvisioner
from spinwick.services.errors import TerminalFailure, WaitTimeout
from spinwick.settings import TimeoutSettings
from tests.spinwick_fakes import FakeClock, FakeCloud, FakeGitHub, make_context, make_pr, make_settings, request_error


def test_cluster_becomes_stable_and_is_announced(store) -> None:
    clock = FakeClock()
    cloud = FakeCloud(cluster_states=["creation-in-progress", "provisioning", "stable"])
    github = FakeGitHub()
    ctx = make_context(store, cloud=cloud, github=github, clock=clock)

    cluster = ClusterProvisioner(ctx).provision(make_pr())

    assert cluster.state == "stable"
    assert cloud.calls[0] == ("create_cluster", {"size": "SizeAlef1000"})
    assert cloud.call_names().count("get_cluster") == 3
    assert clock.sleeps == [30, 30]
    assert github.comments == [CLUSTER_WAIT_MESSAGE, CLUSTER_READY_MESSAGE]


def test_cluster_creation_failed_is_terminal_and_never_deleted(store) -> None:
    cloud = FakeCloud(cluster_states=["creating", "creation-failed"])
    ctx = make_context(store, cloud=cloud)

    with pytest.raises(TerminalFailure):
        ClusterProvisioner(ctx).provision(make_pr())

    assert cloud.call_names() == ["create_cluster", "get_cluster", "get_cluster"]


def test_cluster_wait_times_out(store) -> None:
    cloud = FakeCloud(cluster_states=["creating"])
    ctx = make_context(store, cloud=cloud, settings=make_settings(timeouts=TimeoutSettings(cluster=900)))

    with pytest.raises(WaitTimeout):
        ClusterProvisioner(ctx).provision(make_pr())

    assert "delete_installation" not in cloud.call_names()
    assert cloud.call_names().count("get_cluster") == 31


def test_cluster_poll_retries_transient_errors(store) -> None:
    cloud = FakeCloud(cluster_states=[request_error(502), "stable"])
    ctx = make_context(store, cloud=cloud)

    assert ClusterProvisioner(ctx).provision(make_pr()).state == "stable"


def test_comment_delivery_failures_do_not_stop_provisioning(store) -> None:
    github = FakeGitHub(comment_error=request_error(500, method="POST"))
    ctx = make_context(store, github=github)

    assert ClusterProvisioner(ctx).provision(make_pr()).state == "stable"
