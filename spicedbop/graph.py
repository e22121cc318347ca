"""Update graphs: named channels of releases and the choice of update targets."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from spicedbop.memory import MemorySource, State, UpdateGraphError, new_memory_source


class VersionAttribute(str, Enum):
    """Properties of an available version, as reported in cluster status."""

    NEXT = "next"
    LATEST = "latest"
    MIGRATION = "migration"

    def __str__(self) -> str:
        return self.value


@dataclass
class SpiceDBVersion:
    """A release within a channel."""

    name: str = ""
    channel: str = ""
    attributes: list[VersionAttribute] = field(default_factory=list)
    description: str = ""


@dataclass
class Channel:
    """A named series of updates with a path to its head from every node."""

    name: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    edges: dict[str, list[str]] = field(default_factory=dict)
    nodes: list[State] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a mapping, leaving out empty optional fields."""
        data: dict[str, Any] = {"name": self.name}
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        if self.edges:
            data["edges"] = {source: list(targets) for source, targets in self.edges.items()}
        if self.nodes:
            data["nodes"] = [node.to_dict() for node in self.nodes]
        return data

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "Channel":
        """Build a channel from a mapping as produced by :meth:`to_dict`."""
        return Channel(
            name=str(data.get("name", "")),
            metadata={str(k): str(v) for k, v in (data.get("metadata") or {}).items()},
            edges={
                str(source): [str(t) for t in (targets or [])]
                for source, targets in (data.get("edges") or {}).items()
            },
            nodes=[State.from_dict(node) for node in (data.get("nodes") or [])],
        )


@dataclass
class Target:
    """The outcome of choosing what a cluster should run next."""

    base_image: str = ""
    version: SpiceDBVersion | None = None
    state: State = field(default_factory=State)


def explode_image(image: str) -> tuple[str, str, str]:
    """Split an image reference into base image, tag and digest."""
    image_maybe_tag, _, digest = image.partition("@")
    base_image, _, tag = image_maybe_tag.partition(":")
    return base_image, tag, digest


@dataclass
class UpdateGraph:
    """A set of channels describing the allowed update paths."""

    channels: list[Channel] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a mapping, leaving out an empty channel list."""
        if not self.channels:
            return {}
        return {"channels": [channel.to_dict() for channel in self.channels]}

    @staticmethod
    def from_dict(data: Mapping[str, Any] | None) -> "UpdateGraph":
        """Build a graph from a mapping as produced by :meth:`to_dict`."""
        channels = (data or {}).get("channels") or []
        return UpdateGraph(channels=[Channel.from_dict(c) for c in channels])

    def default_channel_for_datastore(self, datastore: str) -> str:
        """Name of the first channel marked default for the datastore."""
        wanted = datastore.casefold()
        for channel in self.channels:
            if (
                channel.metadata.get("datastore", "").casefold() == wanted
                and channel.metadata.get("default", "").casefold() == "true"
            ):
                return channel.name
        raise UpdateGraphError(f'no channel found for datastore "{datastore}"')

    def source_for_channel(self, engine: str, channel: str) -> MemorySource:
        """The named channel for the engine, as a queryable source."""
        for candidate in self.channels:
            if (
                candidate.name.casefold() == channel.casefold()
                and candidate.metadata.get("datastore", "").casefold() == engine.casefold()
            ):
                return new_memory_source(candidate.nodes, candidate.edges)
        raise UpdateGraphError(f'no channel for "{engine}" found with name "{channel}"')

    def copy(self) -> "UpdateGraph":
        """A copy whose channel list can change without touching this one."""
        return UpdateGraph(channels=list(self.channels))

    def available_versions(self, engine: str, version: SpiceDBVersion) -> list[SpiceDBVersion]:
        """Safe versions to update to from ``version``."""
        try:
            source = self.source_for_channel(engine, version.channel)
        except UpdateGraphError as err:
            raise UpdateGraphError(
                f'no source found for channel "{version.channel}", '
                f"can't compute available versions: {err}"
            ) from err

        available: list[SpiceDBVersion] = []
        direct = source.next_version_without_migrations(version.name)
        latest = source.latest_version(version.name)
        if direct:
            entry = SpiceDBVersion(
                name=direct,
                channel=version.channel,
                attributes=[VersionAttribute.NEXT],
                description="direct update with no migrations",
            )
            if direct == latest:
                entry.description += ", head of channel"
                entry.attributes.append(VersionAttribute.LATEST)
            available.append(entry)

        following = source.next_version(version.name)
        if following and following != direct:
            entry = SpiceDBVersion(
                name=following,
                channel=version.channel,
                attributes=[VersionAttribute.NEXT, VersionAttribute.MIGRATION],
                description="update will run a migration",
            )
            if following == latest:
                entry.description += ", head of channel"
                entry.attributes.append(VersionAttribute.LATEST)
            available.append(entry)

        if latest and following != latest and direct != latest:
            available.append(
                SpiceDBVersion(
                    name=latest,
                    channel=version.channel,
                    attributes=[VersionAttribute.LATEST, VersionAttribute.MIGRATION],
                    description="head of the channel, multiple updates will run in sequence",
                )
            )

        # Only the safest update from each other channel is offered.
        for channel in self.channels:
            if channel.name == version.channel:
                continue
            if channel.metadata.get("datastore", "") != engine:
                continue
            try:
                other = self.source_for_channel(engine, channel.name)
            except UpdateGraphError:
                continue
            if other_direct := other.next_version_without_migrations(version.name):
                available.append(
                    SpiceDBVersion(
                        name=other_direct,
                        channel=channel.name,
                        attributes=[VersionAttribute.NEXT],
                        description="direct update with no migrations, different channel",
                    )
                )
                continue
            if other_next := other.next_version(version.name):
                available.append(
                    SpiceDBVersion(
                        name=other_next,
                        channel=channel.name,
                        attributes=[VersionAttribute.NEXT, VersionAttribute.MIGRATION],
                        description="update will run a migration, different channel",
                    )
                )
        return available

    def compute_target(
        self,
        default_base_image: str,
        image: str,
        version: str,
        channel: str,
        engine: str,
        current_version: SpiceDBVersion | None,
        rolling: bool,
    ) -> Target:
        """Choose the version and state a cluster should move to next."""
        base_image, tag, digest = explode_image(image)

        # An explicit tag or digest bypasses the update graph.
        if digest or tag:
            return Target(base_image=base_image, state=State(tag=tag, digest=digest))

        base_image = base_image or default_base_image
        if not base_image:
            raise UpdateGraphError("no base image in operator config, and none specified in image")

        if not channel and current_version is not None:
            channel = current_version.channel

        if not channel:
            try:
                channel = self.default_channel_for_datastore(engine)
            except UpdateGraphError as err:
                raise UpdateGraphError(
                    f'couldn\'t find channel for datastore "{engine}": {err}'
                ) from err

        try:
            source = self.source_for_channel(engine, channel)
        except UpdateGraphError as err:
            raise UpdateGraphError(f"error fetching update source: {err}") from err

        current_state = source.state(current_version.name) if current_version is not None else State()

        if rolling:
            if not current_state.id:
                raise UpdateGraphError("cluster is rolling out, but no current state is defined")
            return Target(base_image=base_image, version=current_version, state=current_state)

        if version:
            try:
                source = source.subgraph(version)
            except UpdateGraphError as err:
                current_name = current_version.name if current_version is not None else ""
                raise UpdateGraphError(
                    f"error finding update path from {current_name} to {version}"
                ) from err

        if current_version is not None and current_version.name:
            target_version = source.next_version(current_version.name)
            if not target_version:
                return Target(base_image=base_image, version=current_version, state=current_state)
        else:
            # Nothing installed yet, so install the head of the channel.
            target_version = source.latest_version("")

        state = source.state(target_version)
        return Target(
            base_image=base_image,
            version=SpiceDBVersion(name=state.id, channel=channel),
            state=state,
        )