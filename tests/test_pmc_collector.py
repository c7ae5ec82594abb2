import pytest

from vsesync.clients.clientset import Clientset, PodApi
from vsesync.collectors.base import CollectionConstructor, CollectorError
from vsesync.collectors.pmc import new_pmc_collector

PMC_OUTPUT = "\n".join(
    [
        "<date>",
        "1686916187.0584",
        "</date>",
        "<PMC>",
        "sending: GET GRANDMASTER_SETTINGS_NP",
        "\t001122.fffe.334455-0 seq 0 RESPONSE MANAGEMENT GRANDMASTER_SETTINGS_NP",
        "\t\tclockClass              248",
        "\t\tclockAccuracy           0xfe",
        "\t\toffsetScaledLogVariance 0xffff",
        "\t\tcurrentUtcOffset        37",
        "\t\tleap61                  0",
        "\t\tleap59                  0",
        "\t\tcurrentUtcOffsetValid   0",
        "\t\tptpTimescale            1",
        "\t\ttimeTraceable           0",
        "\t\tfrequencyTraceable      0",
        "\t\ttimeSource              0xa0",
        "</PMC>",
    ]
)


class FakePodApi(PodApi):
    def __init__(self, output=PMC_OUTPUT, pods=("linuxptp-daemon-abc",)):
        self.output = output
        self.pods = [{"metadata": {"name": name}} for name in pods]

    def list_pods(self, namespace, field_selector=None):
        return list(self.pods)

    def create_pod(self, manifest):
        raise RuntimeError("not allowed")

    def delete_pod(self, namespace, name):
        raise RuntimeError("not allowed")

    def exec_in_container(self, namespace, pod_name, container_name, command, stdin=None):
        return self.output, ""


class FakeCallback:
    def __init__(self):
        self.calls = []

    def call(self, output, tag):
        self.calls.append((output, tag))


def make_constructor(api):
    return CollectionConstructor(
        callback=FakeCallback(),
        clientset=Clientset(api=api, kubeconfig_paths=["kubeconfig"]),
        ptp_node_name="node",
    )


def test_pmc_collector_polls_settings():
    constructor = make_constructor(FakePodApi())
    collector = new_pmc_collector(constructor)
    collector.start()
    result = collector.poll()
    assert result.errors == []
    assert result.collector_name == "PMC"
    info, _tag = constructor.callback.calls[0]
    assert info.timestamp == "2023-06-16T11:49:47.0584Z"
    assert info.clock_class == 248
    assert info.clock_accuracy == "0xfe"
    assert info.current_utc_offset == 37
    assert info.time_source == "0xa0"


def test_pmc_collector_identity():
    collector = new_pmc_collector(make_constructor(FakePodApi()))
    assert collector.name == "PMC"
    assert collector.callback_tag == "pmc-info"
    assert collector.is_announcer is False


def test_pmc_collector_reports_unparsable_output():
    constructor = make_constructor(FakePodApi(output="<date>\nbad\n</date>\n<PMC>\nx\n</PMC>"))
    result = new_pmc_collector(constructor).poll()
    assert len(result.errors) == 1
    assert constructor.callback.calls == []


def test_pmc_collector_without_pod_fails():
    with pytest.raises(CollectorError):
        new_pmc_collector(make_constructor(FakePodApi(pods=())))