import pytest

from ckbtestkit.protocols import BlockingFlag, SupportProtocols


def test_default_flag_allows_everything():
    flag = BlockingFlag()
    assert (flag.connected, flag.disconnected, flag.received, flag.notify) == (True, True, True, True)


def test_disable_individual_bits():
    flag = BlockingFlag()
    flag.disable_connected()
    flag.disable_received()
    assert (flag.connected, flag.disconnected, flag.received, flag.notify) == (False, True, False, True)
    flag.disable_disconnected()
    flag.disable_notify()
    assert flag.bits == 0


def test_disable_all():
    flag = BlockingFlag()
    flag.disable_all()
    assert not (flag.connected or flag.disconnected or flag.received or flag.notify)


@pytest.mark.parametrize(
    "protocol, protocol_id, name",
    [
        (SupportProtocols.PING, 0, "/ckb/ping"),
        (SupportProtocols.DISCOVERY, 1, "/ckb/discovery"),
        (SupportProtocols.IDENTIFY, 2, "/ckb/identify"),
        (SupportProtocols.FEELER, 3, "/ckb/flr"),
        (SupportProtocols.DISCONNECT_MESSAGE, 4, "/ckb/disconnectmsg"),
        (SupportProtocols.SYNC, 100, "/ckb/syn"),
        (SupportProtocols.RELAY, 101, "/ckb/rel"),
        (SupportProtocols.TIME, 102, "/ckb/tim"),
        (SupportProtocols.RELAY_V2, 103, "/ckb/relay"),
        (SupportProtocols.ALERT, 110, "/ckb/alt"),
    ],
)
def test_ids_and_names(protocol, protocol_id, name):
    assert protocol.protocol_id() == protocol_id
    assert protocol.protocol_name() == name
    assert SupportProtocols(protocol_id) is protocol


def test_ids_and_names_unique():
    protocols = [SupportProtocols(member) for member in SupportProtocols]
    ids = {SupportProtocols(member).protocol_id() for member in protocols}
    names = {SupportProtocols(member).protocol_name() for member in protocols}
    assert len(protocols) == 10
    assert len(ids) == len(protocols)
    assert len(names) == len(protocols)


def test_support_versions():
    assert SupportProtocols.PING.support_versions() == ["0.0.1", "2"]
    assert SupportProtocols.RELAY.support_versions() == ["1"]
    assert SupportProtocols.RELAY_V2.support_versions() == ["2"]
    assert SupportProtocols.SYNC.support_versions() == ["1", "2"]


def test_support_versions_returns_copy():
    versions = SupportProtocols.SYNC.support_versions()
    versions.append("9")
    assert SupportProtocols.SYNC.support_versions() == ["1", "2"]


def test_max_frame_lengths():
    assert SupportProtocols.PING.max_frame_length() == 1024
    assert SupportProtocols.DISCOVERY.max_frame_length() == 512 * 1024
    assert SupportProtocols.SYNC.max_frame_length() == 2 * 1024 * 1024
    assert SupportProtocols.RELAY.max_frame_length() == SupportProtocols.RELAY_V2.max_frame_length()
    assert SupportProtocols.RELAY.max_frame_length() == 4 * 1024 * 1024
    assert SupportProtocols.ALERT.max_frame_length() == 128 * 1024


@pytest.mark.parametrize(
    "protocol", [SupportProtocols.SYNC, SupportProtocols.RELAY, SupportProtocols.RELAY_V2]
)
def test_blocking_receive_flag(protocol):
    flag = protocol.flag()
    assert flag.received is True
    assert (flag.connected, flag.disconnected, flag.notify) == (False, False, False)


@pytest.mark.parametrize(
    "protocol",
    [
        SupportProtocols.PING,
        SupportProtocols.DISCOVERY,
        SupportProtocols.IDENTIFY,
        SupportProtocols.FEELER,
        SupportProtocols.DISCONNECT_MESSAGE,
        SupportProtocols.TIME,
        SupportProtocols.ALERT,
    ],
)
def test_non_blocking_flag(protocol):
    assert protocol.flag().bits == 0


def test_flag_is_fresh_each_call():
    first = SupportProtocols.SYNC.flag()
    first.disable_all()
    assert SupportProtocols.SYNC.flag().received is True