# layerform

Layerform helps engineers keep their own staging environments made of
Terraform files. Infrastructure is split into *layer definitions* (for
example a cluster layer and an application layer on top of it), and each
definition can be spawned many times as named *layer instances*.

The `layerform` command keeps track of definitions, instances and
environment variables in a storage location chosen by the current
*context*.

## Installation

    pip install .

This installs the `layerform` command. `layerform --version` prints the
installed version.

## Contexts

A context says where Layerform keeps its data. Contexts are stored in a
YAML file under `~/.layerform/` (the first of `config`,
`configurations.yaml`, `configurations.yml`, `configuration.yaml`,
`configuration.yml`, `config.yaml`, `config.yml` that can be read and
whose current context exists), and one of them is the current one.

Create a local context that keeps everything in a directory (a relative
directory is taken relative to the configuration file):

    layerform config set-context local-example -t local --dir example-dir

Create a context that talks to a Layerform cloud server:

    layerform config set-context cloud-example -t cloud --url https://cloud.example.com --email user@example.com --password password

A context of type `s3` can also be recorded with `--bucket` and
`--region`, but see "What is not supported" below.

Setting a context that already exists updates its values, as long as the
type stays the same. Switch between contexts and list them with:

    layerform config use-context local-example
    layerform config get-contexts

The cloud context can also be given entirely through the environment:
when `LF_CLOUD_URL`, `LF_CLOUD_EMAIL` and `LF_CLOUD_PASSWORD` are all set,
they take precedence over the configured current context.

With a local context, definitions are kept in
`layerform.definitions.json`, instances in `layerform.lfstate` and
environment variables in `layerform.env`, all inside the context's
directory.

## Working with layers

List the layer definitions, ordered so that layers come after the layers
they depend on:

    layerform list definitions

List instances with the instance each dependency resolves to (`default`
when none was chosen) and their status:

    layerform list instances

Spawn an instance of a layer. Without a name, a random one is generated.
Names must start and end with a letter or digit and may contain dashes
and underscores in between. Use `--base` to place the instance on top of
specific instances of the layers it depends on (comma separated
`layer=instance` pairs, repeatable), and `--var` to pass Terraform
variables (repeatable):

    layerform spawn kibana my-kibana --base eks=my-eks --var foo=bar

Refresh an instance so that it matches the current definition, or update
its variables:

    layerform refresh kibana my-kibana --var foo=baz

Destroy an instance:

    layerform kill kibana my-kibana

An instance that other instances depend on is not destroyed; the command
stops with an error. The `--force` flag is accepted but does not change
this.

Spawning, refreshing and killing are carried out by the Layerform cloud
server of the current context; the command waits, checking every two
seconds, until the instance reaches its final status.

## Environment variables

Variables saved with `set-env` are stored with the current context for
use when layers are spawned, for example provider credentials or layer
variables in the `TF_VAR_name` form:

    layerform set-env TF_VAR_foo bar

## Cloud users

With a cloud context active, new users can be created. The generated
password is printed once:

    layerform cloud create-user --name "Jane Doe" --email jane@example.com

## Using it as a library

The modules can be used directly:

- `layerform.layerfile.from_file(path)` reads a JSON file listing layers
  (`name`, `files` glob patterns, `dependencies`), and
  `Layerfile.to_layers()` turns it into `LayerDefinition` objects with
  their file contents and SHA-1 digest.
- `layerform.config.load()` and `init_config()` read and create the
  configuration; `Config` hands out the backends for the current context.
- `layerform.layerdefinitions`, `layerform.layerinstances` and
  `layerform.envvars` hold the file-backed, in-memory (definitions only)
  and cloud backends.
- `layerform.dependants.has_dependants()` and `get_dependants()` find
  instances that build on another instance.

## Logging

Set `LF_LOG` to `trace`, `debug`, `info`, `warn`, `error` or `off` to
control how much Layerform logs.

## What is not supported

- Layerform does not run Terraform itself. `spawn`, `refresh` and `kill`
  only work with a cloud context; with a local or s3 context they stop
  with an error.
- There is no command that stores layer definitions from a layer file;
  `list definitions` shows only definitions already stored in the
  context (the `layerfile` module can read such a file from Python).
- There is no command that prints the outputs of an instance.
- Contexts of type `s3` can be recorded, but no storage is provided for
  them: every command that needs the context's data stops with an error.