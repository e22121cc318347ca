"""The default operator configuration and the command that writes it."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

import requests
import yaml

from spicedbop.graph import Channel, UpdateGraph
from spicedbop.memory import State

GITHUB_NAMESPACE = "authzed"
GITHUB_REPOSITORY = "spicedb"
GITHUB_API = "https://api.github.com"
IMAGE_NAME = "ghcr.io/authzed/spicedb"
REQUEST_TIMEOUT = 30.0


def _release(node_id: str, migration: str, tag: str | None = None, phase: str = "") -> State:
    return State(id=node_id, tag=tag or node_id, migration=migration, phase=phase)


def _forward_edges(
    nodes: Sequence[State],
    skip: Iterable[str] = (),
    stops: Iterable[str] = (),
) -> dict[str, list[str]]:
    """Edges from each non-head node to every newer target.

    ``nodes`` are ordered newest first. Ids in ``skip`` are never update
    targets; a target in ``stops`` must be reached before going past it.
    """
    skipped = set(skip)
    stop_ids = set(stops)
    oldest_first = [node.id for node in reversed(nodes)]
    edges: dict[str, list[str]] = {}
    for position, source in enumerate(oldest_first[:-1]):
        targets: list[str] = []
        for target in oldest_first[position + 1:]:
            if target in skipped:
                continue
            targets.append(target)
            if target in stop_ids:
                break
        edges[source] = targets
    return edges


def _stable_channel(datastore: str, nodes: list[State], edges: dict[str, list[str]]) -> Channel:
    return Channel(
        name="stable",
        metadata={"datastore": datastore, "default": "true"},
        nodes=nodes,
        edges=edges,
    )


def postgres_channel() -> Channel:
    """The stable channel for the postgres datastore."""
    drop = "drop-bigserial-ids"
    ns_config = "add-ns-config-id"
    unique_id = "add-unique-datastore-id"
    tx_index = "add-transaction-timestamp-index"
    nodes = [
        _release("v1.16.1", drop),
        _release("v1.16.0", drop),
        _release("v1.15.0", drop),
        _release("v1.14.1", drop),
        _release("v1.14.0", drop),
        _release("v1.14.0-phase2", "add-xid-constraints", "v1.14.0", "write-both-read-new"),
        _release("v1.14.0-phase1", "add-xid-columns", "v1.14.0", "write-both-read-old"),
        _release("v1.13.0", ns_config),
        _release("v1.12.0", ns_config),
        _release("v1.11.0", ns_config),
        _release("v1.10.0", ns_config),
        _release("v1.9.0", unique_id),
        _release("v1.8.0", unique_id),
        _release("v1.7.1", unique_id),
        _release("v1.7.0", unique_id),
        _release("v1.6.0", unique_id),
        _release("v1.5.0", tx_index),
        _release("v1.4.0", tx_index),
        _release("v1.3.0", tx_index),
        _release("v1.2.0", tx_index),
        _release("v1.1.0", tx_index),
        _release("v1.0.0", "add-unique-living-ns"),
    ]
    edges = _forward_edges(
        nodes,
        skip=("v1.7.0",),
        stops=("v1.14.0-phase1", "v1.14.0-phase2", "v1.14.0"),
    )
    return _stable_channel("postgres", nodes, edges)


def _metadata_counters_channel(datastore: str, oldest_migration: str) -> Channel:
    caveats = "add-caveats"
    counters = "add-metadata-and-counters"
    nodes = [
        *(_release(v, caveats) for v in ("v1.16.1", "v1.16.0", "v1.15.0", "v1.14.1", "v1.14.0")),
        *(
            _release(v, counters)
            for v in (
                "v1.13.0", "v1.12.0", "v1.11.0", "v1.10.0", "v1.9.0",
                "v1.8.0", "v1.7.1", "v1.7.0", "v1.6.0",
            )
        ),
        *(
            _release(v, oldest_migration)
            for v in ("v1.5.0", "v1.4.0", "v1.3.0", "v1.2.0", "v1.1.0", "v1.0.0")
        ),
    ]
    edges = _forward_edges(nodes, skip=("v1.7.0", "v1.14.0"))
    return _stable_channel(datastore, nodes, edges)


def crdb_channel() -> Channel:
    """The stable channel for the cockroachdb datastore."""
    return _metadata_counters_channel("cockroachdb", "add-transactions-table")


def mysql_channel() -> Channel:
    """The stable channel for the mysql datastore."""
    nodes = [
        *(_release(v, "add_caveat") for v in ("v1.16.1", "v1.16.0", "v1.15.0", "v1.14.1", "v1.14.0")),
        *(_release(v, "add_ns_config_id") for v in ("v1.13.0", "v1.12.0", "v1.11.0", "v1.10.0")),
        *(_release(v, "add_unique_datastore_id") for v in ("v1.9.0", "v1.8.0", "v1.7.1", "v1.7.0")),
    ]
    edges = _forward_edges(nodes, skip=("v1.7.0", "v1.14.0"))
    return _stable_channel("mysql", nodes, edges)


def spanner_channel() -> Channel:
    """The stable channel for the spanner datastore."""
    return _metadata_counters_channel("spanner", "initial")


def default_operator_config() -> dict[str, Any]:
    """The operator configuration with every built-in channel."""
    graph = UpdateGraph(
        channels=[postgres_channel(), crdb_channel(), mysql_channel(), spanner_channel()]
    )
    return {"imageName": IMAGE_NAME, **graph.to_dict()}


def fetch_latest_release_name(session: requests.Session | None = None) -> str:
    """Name of the newest release by date, as reported by the release API."""
    url = f"{GITHUB_API}/repos/{GITHUB_NAMESPACE}/{GITHUB_REPOSITORY}/releases/latest"
    http = session or requests.Session()
    response = http.get(url, headers={"Accept": "application/vnd.github+json"}, timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    name = response.json().get("name")
    if not isinstance(name, str) or not name:
        raise ValueError("latest release has no name")
    return name


def check_channels_contain(config: Mapping[str, Any], release_name: str) -> None:
    """Raise ValueError unless every channel's head is tagged ``release_name``."""
    for channel in UpdateGraph.from_dict(config).channels:
        if not channel.nodes or channel.nodes[0].tag != release_name:
            raise ValueError(
                f'channel "{channel.name}" does not contain the latest release "{release_name}"'
            )


def render_config(config: Mapping[str, Any]) -> str:
    """The configuration as YAML with sorted keys."""
    return yaml.safe_dump(dict(config), sort_keys=True, default_flow_style=False)


def main(argv: Sequence[str] | None = None) -> int:
    """Write the default operator configuration to the file named in ``argv``."""
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) != 1:
        print("must provide filename")
        return 1

    with requests.Session() as session:
        latest = fetch_latest_release_name(session)

    config = default_operator_config()
    try:
        check_channels_contain(config, latest)
    except ValueError as err:
        print(err)
        return 1

    Path(args[0]).write_text(render_config(config), encoding="utf-8")
    return 0