# spicedbop

Tools for planning SpiceDB upgrades: update channels and the graphs that
connect their releases, the choice of a safe next version, the label and key
conventions for the Kubernetes objects that belong to a SpiceDB cluster, and
a command that writes the built-in channels out as an operator configuration
file.

## Installing

    pip install spicedbop

For running the tests:

    pip install "spicedbop[test]"

## Update sources (`spicedbop.memory`)

A channel is a list of release `State`s ordered newest first, together with
edges that say which release may be updated to which. `new_memory_source`
builds a `MemorySource` from them:

```python
from spicedbop.memory import State, new_memory_source

source = new_memory_source(
    [State(id="v2", tag="v2"), State(id="v1", tag="v1")],
    {"v1": ["v2"]},
)
source.next_version("v1")                     # "v2"
source.next_version_without_migrations("v1")  # "v2" (same migration and phase)
source.latest_version("v1")                   # "v2"; "" when asked about the head
source.state("v1")                            # State(id="v1", tag="v1", ...)
source.state("unknown")                       # State() with every field empty
source.subgraph("v1")                         # a source whose head is v1
```

Building a source raises `UpdateGraphError` (a `ValueError`) when there are
no nodes or no edges, when two nodes share an id, when an edge names a node
that is not in the list, when a node other than the head has no outgoing
edges, when a node has no path to the head, or when following the edges runs
into a cycle. `State.to_dict` and `State.from_dict` convert a state to and
from a plain mapping, leaving out empty optional fields.

## Update graphs (`spicedbop.graph`)

An `UpdateGraph` holds `Channel`s, each with a name, metadata (such as
`datastore` and `default`), nodes and edges.

```python
from spicedbop.graph import SpiceDBVersion, UpdateGraph

graph = UpdateGraph.from_dict({"channels": [...]})
graph.default_channel_for_datastore("postgres")
graph.source_for_channel("postgres", "stable")
graph.available_versions("postgres", SpiceDBVersion(name="v1.13.0", channel="stable"))
target = graph.compute_target(default_base_image, image, version, channel,
                              engine, current_version, rolling)
target.base_image, target.version, target.state
```

- `default_channel_for_datastore` returns the first channel whose metadata
  names the datastore and marks it as default (both compared without regard
  to case).
- `available_versions` lists the direct update with no migrations, the next
  update that runs a migration, and the head of the channel, each tagged
  with `VersionAttribute` values (`next`, `latest`, `migration`) and a
  description; it then adds the safest update found in every other channel
  for the same datastore.
- `compute_target` returns a `Target`. An image that already carries a tag
  or digest is used as given; otherwise the base image falls back to the
  default, the channel falls back to the current version's channel and then
  to the datastore's default channel. A rolling cluster keeps its current
  state; an explicit version restricts the graph to the path towards it;
  with nothing installed the head of the channel is chosen.
- `explode_image` splits an image reference into base image, tag and digest.
- `copy` returns a graph with its own channel list; `to_dict` and
  `from_dict` convert to and from plain mappings.

Every failure is raised as `UpdateGraphError`.

## Labels, selectors and keys (`spicedbop.metadata`)

The module defines the label and annotation keys that mark objects as
managed by the operator (for example `OPERATOR_MANAGED_LABEL_KEY`,
`OWNER_LABEL_KEY`, `OWNER_ANNOTATION_KEY_PREFIX`,
`SPICEDB_MIGRATION_REQUIREMENTS_KEY`, `PAUSED_CONTROLLER_SELECTOR_KEY`) and
helpers that work with them:

- `labels_for_component(owner, component)` and
  `selector_for_component(owner, component)`;
- `parse_selector("a=b,!c,d in (e,f)")` returns a `Selector` of
  `Requirement`s; `Selector.matches(labels)` tests a label mapping;
  `selector_from_labels` builds an exact-match selector. Invalid selectors
  raise `SelectorError`. `MANAGED_DEPENDENT_SELECTOR` and
  `NOT_PAUSED_SELECTOR` are ready-made selectors;
- `GroupVersionResource`, `parse_resource_arg("deployments.v1.apps")`,
  `gvr_meta_namespace_key`, `meta_namespace_key` and
  `split_gvr_meta_namespace_key`, for keys of the form
  `resource.version.group::namespace/name`;
- `owner_keys_from_annotations` and `cluster_keys_from_meta`, which list the
  `namespace/name` keys of the clusters that own an object.

## Version string (`spicedbop.version`)

`usage_version(include_deps=False, version=None)` returns
`"spicedb-operator <version>"`, or a development-build notice when the
version is `(devel)`. With `include_deps=True` it lists the installed
version of each of the package's dependencies, one per line.

## Built-in channels and the configuration command (`spicedbop.channels`)

`postgres_channel`, `crdb_channel`, `mysql_channel` and `spanner_channel`
return the stable channel for each datastore. `default_operator_config`
combines them with the default image name into a configuration mapping, and
`render_config` turns it into YAML.

    spicedbop-update-graph default-operator-config.yaml

The command asks the GitHub releases API for the newest SpiceDB release
(`fetch_latest_release_name`) and, through `check_channels_contain`, refuses
to write the file (printing a message and exiting with status 1) if the head
of any channel is not tagged with that release. Without exactly one file name
it prints `must provide filename` and exits with status 1.

## What this package does not do

It does not run a controller: it does not connect to a Kubernetes cluster,
watch or apply objects, install custom resource definitions, validate a
cluster's configuration, or run migration jobs. It provides the update
planning, label conventions and configuration data that such a controller
would use.