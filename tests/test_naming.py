import pytest

from jetchannel.naming import (
    CONTROLLER_NAME,
    DISPATCHER_NAME,
    consumer_name,
    consumer_subject_name,
    publish_subject_name,
    stream_name,
)


@pytest.mark.parametrize(
    ("namespace", "name", "expected"),
    [
        ("default", "channel", "KN_DEFAULT__CHANNEL"),
        ("knative-eventing", "my-channel", "KN_KNATIVE_EVENTING__MY_CHANNEL"),
    ],
)
def test_stream_name_documented_examples(namespace, name, expected):
    assert stream_name(namespace, name) == expected


def test_stream_name_override_wins():
    assert stream_name("default", "channel", "CUSTOM") == "CUSTOM"


def test_stream_name_empty_override_ignored():
    assert stream_name("default", "channel", "") == stream_name("default", "channel")


def test_stream_name_has_no_hyphens_and_is_upper():
    result = stream_name("a-b-c", "d-e")
    assert "-" not in result
    assert result == result.upper()
    assert result.startswith("KN_")


def test_publish_subject_name():
    assert publish_subject_name("ns", "chan") == "ns.chan._knative"


def test_consumer_name_strips_hyphens_and_uppercases():
    uid = "abc-def-123"
    result = consumer_name(uid)
    assert result.startswith("KN_SUB_")
    assert result[len("KN_SUB_"):] == uid.replace("-", "").upper()


def test_consumer_subject_name_lowercases_uid():
    uid = "ABC-DEF"
    result = consumer_subject_name("ns", "chan", uid)
    assert result == "ns.chan._knative_consumer." + uid.replace("-", "").lower()


def test_consumer_names_differ_per_uid():
    assert consumer_name("one") != consumer_name("two")
    assert consumer_name("one").endswith("ONE")


def test_component_names_in_subjects():
    subject = publish_subject_name(DISPATCHER_NAME, CONTROLLER_NAME)
    assert subject == "jetstream-ch-dispatcher.jetstream-ch-controller._knative"