# mobilekit

A Python library for building, archiving and deploying Apple mobile apps.
It drives the command-line tools that come with Xcode (`xcodebuild`,
`xcrun`, `system_profiler`, `security`) and `ios-deploy`, and includes a
small Handlebars-style template engine for generating project files.

## Installation

```
pip install mobilekit
```

To run the test suite:

```
pip install "mobilekit[test]"
pytest
```

## Modules

### `mobilekit.command`

`Command` builds a child process step by step; every `with_*` method changes
the command and returns it.

- `Command.impure(name)` inherits the current environment;
  `Command.pure(name)` starts from an empty one.
- `Command.impure_parse("pod install")` and `Command.pure_parse(...)` split a
  whitespace-separated string into program and arguments and raise
  `ValueError` on an empty string; the `try_*_parse` variants return `None`
  instead.
- `with_arg`, `with_args`, `with_parsed_args`, `with_env_var`,
  `with_env_vars` (a mapping or pairs), `with_current_dir`, `with_stdin`,
  `with_stdout`, `with_stderr`. `display` / `str(command)` is the command as
  typed in a shell.
- `run()` starts the process and returns a `Handle`; `run_and_wait()` blocks
  until it exits; `run_and_wait_for_output()` captures stdout and stderr and
  returns an `Output`; `run_and_wait_for_string()` returns stdout decoded as
  UTF-8; `run_and_wait_for_str(func)` passes that string to `func`;
  `run_and_detach()` starts it in its own session with all streams discarded.

A `Handle` is consumed with `wait()`, `wait_for_output()` or `leak()`;
`try_wait()` polls and `kill()` ends the process. A handle dropped without
being consumed logs an error.

### `mobilekit.output`

`Output` holds a finished command's `returncode`, `stdout` and `stderr`
bytes, with `success()`, `stdout_str()` and `stderr_str()`. Failures are
raised as subclasses of `CommandError`: `SpawnFailed`, `WaitFailed`,
`CommandFailed` (non-zero exit), `CommandFailedWithOutput` (non-zero exit
with captured output, available as `error.output`) and `InvalidUtf8`.

### `mobilekit.traverse`

`traverse(src, dest, transform_path=no_transform, template_ext="hbs")`
walks the tree at `src` and returns a deque of `Action`s that recreate it
under `dest`: a create-directory action per directory, a write-template
action per file ending in `.hbs` (written without the extension), and a copy
action for every other file. `transform_path` post-processes each
destination path; failures are raised as `TraversalError`.

### `mobilekit.bicycle`

`Bicycle` renders templates in strict mode: an unknown variable raises
`RenderingError`. It supports `{{var}}`, `{{{raw}}}`, dotted paths,
comments, `~` whitespace control, the blocks `if`, `unless`, `with` and
`each` (with `else`), the helpers `eq`, `ne`, `gt`, `gte`, `lt`, `lte`,
`and`, `or`, `not`, `len`, `lookup`, and your own helpers passed as a
mapping of names to callables. Escaping is `EscapeFn.NONE` (the default),
`EscapeFn.HTML` or any `str -> str` callable.

Variables live in a `JsonMap`; `insert(name, value)` converts the value to
plain JSON-like data. `base_data` given to the constructor is available to
every render.

- `render(template, insert_data)` renders a string.
- `transform_path(path, insert_data)` renders a path that contains `{{`.
- `process(src, dest, insert_data)` traverses a template tree (rendering
  templated paths) and carries out every action;
  `filter_and_process(..., action_filter)` only those the filter accepts.
  `process_action` / `process_actions` carry out actions you already have.
  Failures are raised as `ProcessingError`.

```python
from mobilekit.bicycle import Bicycle

bike = Bicycle()
print(bike.render("Hello {{name}}!", lambda data: data.insert("name", "Shinji")))
# Hello Shinji!
```

### `mobilekit.teams`

`find_development_teams()` reads the code-signing certificates in the
keychain with `security find-certificate` and returns sorted, unique `Team`
objects (`name`, `id`). `teams_from_pem(pem_data)` does the same for PEM data
you already have. Certificates without a common name or organizational unit
are logged and skipped.

### `mobilekit.system_profile`

`DeveloperTools.detect()` runs `system_profiler SPDeveloperToolsDataType`
and returns the installed Xcode `version` as `(major, minor)`;
`DeveloperTools.from_output(text)` parses output you already have. Raises
`XcodeNotInstalled` on empty output and `VersionSearchFailed` when no
version is found.

### `mobilekit.plist`

`Raw` is the `apple` settings table in kebab-case (`from_dict`, `to_dict`);
`Raw.detect()` fills in the first development team found. `PListPair`
values may be booleans, strings, lists or `PlistDictionary` tables;
`value_to_string`, `pair_to_string` and `dictionary_to_string` give their
flattened text form.

### `mobilekit.target`

`Target.all()` maps the target names `aarch64`, `aarch64-sim` and `x86_64`
to their triple, arch and SDK; `Target.for_arch("arm64")` finds one by arch
or alias, and `Target.macos()` is the macOS target. A target's `build`,
`archive` and `export` methods run `xcodebuild`; `archive` can first set a
build number with `agvtool`. `min_xcode_version_satisfied()` raises
`XcodeTooLow` when the installed Xcode is older than the target needs.

The `config` passed to these methods is any object with the attributes
`scheme`, `workspace_path`, `archive_dir`, `project_dir`,
`export_plist_path` and `export_dir`. The `env` argument is a mapping of
environment variables, an object with an `explicit_env()` method, or `None`.

### `mobilekit.ios_deploy`, `mobilekit.simctl`, `mobilekit.device`

- `ios_deploy.parse_events(text)` reads the back-to-back JSON events that
  `ios-deploy` prints; `ios_deploy.run_and_debug(...)` deploys and debugs an
  app on a device.
- `simctl.device_list(env)` lists available iOS simulators
  (`SimulatorDevice`), `SimulatorDevice.start(env)` opens one, and
  `simctl.run(config, env, device_id)` installs and launches the archived app.
- `device.device_list(env)` lists connected devices via `ios-deploy`;
  `Device.from_simulator(simulator)` wraps a simulator; `Device.run(...)`
  builds, archives, exports, unzips the IPA and deploys it, or installs it on
  a simulator, returning a `Handle` to the deploy step. For these steps
  `config` also needs `app_name`, `app_path` and `reverse_domain`.

## What it does not do

mobilekit is a library only: it installs no command-line program. It does
not load or generate a project configuration file, does not create Xcode
projects, does not install toolchains or dependencies, does not compile Rust
libraries for a target, and has no Android support. You supply the
configuration object and environment that the build and deploy functions
use.