# vsesync

`vsesync` gathers time-synchronisation data from a node that runs the
linuxptp daemon. It reads the device details of the PTP network card, the DPLL
lock states and phase offsets, the GNSS receiver status and the grandmaster
settings that `pmc` reports.

Commands run inside a container through an execution context. The output of
each command is wrapped in `<key>` / `</key>` markers. This lets many commands
go out in one shell script and lets their results be separated again
afterwards. A callback writes out the parsed values, either as raw tagged lines
or in the JSON-lines format that downstream analysers expect.

## Installation

The package needs only the standard library and supports Python 3.10 and
later. The `test` extra pulls in pytest.

## Layout

- `vsesync.callbacks`
  - `OutputFormat` (`RAW`, `ANALYSER_JSON`), `AnalyserFormat`, `FileCallback`,
    `get_file_handle` and `setup_callback`.
- `vsesync.clients.command`
  - `Cmd`, a command with its markers and an optional output processor.
  - `CmdGroup`, several commands joined into one script.
  - `ExecContext`, the abstract base class for anything that can run commands.
- `vsesync.clients.clientset`
  - `PodApi`, the abstract pod operations: list, create, delete and exec in a container.
  - `Clientset`, which holds a `PodApi` and provides `find_pod_name_from_prefix`.
  - `MissingInputError`.
- `vsesync.clients.exec_context`
  - `ContainerExecContext`, which runs commands in an existing pod.
  - `ContainerCreationExecContext`, which also creates and deletes its own pod through `create_pod_and_wait` and `delete_pod_and_wait`.
  - `Volume`, `ExecError` and `fetch_duration_env`.
- `vsesync.contexts`
  - `get_ptp_daemon_context`, for the linuxptp daemon container.
  - `get_netlink_context`, for the privileged DPLL netlink debug pod.
- `vsesync.devices`
  - `device_info.get_ptp_device_info`
  - `dpll_fs.get_dpll_filesystem_info` and `dpll_fs.is_dpll_filesystem_present`
  - `dpll_netlink.get_netlink_parameters` and `dpll_netlink.get_dpll_netlink_info`
  - `gps_nav.get_gps_nav`
  - `pmc.get_pmc`
  - the parsers `gps_nav.process_ubx`, `pmc.process_pmc` and `dpll_netlink.select_pin`
- `vsesync.detect`
  - `parse_config`, `get_ptp_clock_device`, `detect_interfaces`, `render` and `detect`, which find the interfaces named in ts2phc configs under `/var/run/`.
- `vsesync.collectors`
  - `base`, with `CollectionConstructor`, `PollResult` and `BaseCollector`.
  - `registry`, with `CollectorRegistry`, `Inclusion`, `get_registry` and `register_collector`.
  - the collectors in `dpll`, `gps` and `pmc`.

## Usage

Subclass `ExecContext` and implement two methods, `exec_command(command)` and
`exec_command_stdin(command, stdin)`. Each returns `(stdout, stderr)`. The
device fetchers send their script to `/usr/bin/sh` through
`exec_command_stdin`, which makes them easy to drive from recorded output.

```python
from vsesync.devices.pmc import get_pmc

info = get_pmc(ctx)          # ctx: an ExecContext
print(info.clock_class, info.time_source)
```

The parsers also work directly on text you already have:

```python
from vsesync.devices.pmc import process_pmc
from vsesync.detect import parse_config

settings = process_pmc({"PMC": pmc_output})
sections = parse_config(ts2phc_config_text)
```

To work against a cluster, give `Clientset` your own `PodApi` implementation
and at least one kubeconfig path. Then ask `vsesync.contexts` for a context:

```python
from vsesync.clients.clientset import Clientset
from vsesync.contexts import get_ptp_daemon_context

clientset = Clientset(api=my_pod_api, kubeconfig_paths=["kubeconfig"])
ctx = get_ptp_daemon_context(clientset, node_name="worker-0")
```

To write results, create a callback for a file name, or for `"-"`/`""` to use
standard output. Then pass each collected value to it. `FileCallback` can also
be used as a context manager.

```python
from vsesync.callbacks import OutputFormat, setup_callback

with setup_callback("collected.jsonl", OutputFormat.ANALYSER_JSON) as callback:
    callback.call(info, "pmc-info")
```

The two formats write different lines:

- `OutputFormat.RAW` writes one line per value, in the form `TypeName:tag, {json}`.
- `OutputFormat.ANALYSER_JSON` writes one JSON object per line for each entry of the value's `analyser_format()`.

The collectors register themselves when their modules are imported. Each one
is built from a `CollectionConstructor`. Its `poll()` fetches a value, hands it
to the callback and returns a `PollResult` that lists any errors.
`new_dpll_collector` picks the sysfs collector when the DPLL files exist and
the netlink collector otherwise.

## Environment

When the package manages the netlink debug pod, two environment variables set
its timeouts:

- `COLLECTOR_POD_START_TIMEOUT` for starting the pod. The default is 5 seconds.
- `COLLECTOR_POD_DELETE_TIMEOUT` for deleting it. The default is 10 minutes.

Both take durations such as `30s`, `1.5h` or `2h45m`.

## What it does not do

- There is no command-line program. Everything is used as a library.
- There is no Kubernetes client. You supply the `PodApi` that lists, creates and deletes pods and runs commands in them.
- There is no loop that schedules polls over a duration. You call `poll()` yourself.
- There are no collectors for device info or for daemon logs.
- The package does not report GNSS receiver firmware or tool versions.