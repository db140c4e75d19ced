"""Tests for the S3 bridge against a mocked boto3 client."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from termxfer.errors import (
    AuthError,
    HostConnectionError,
    HostIOError,
    NotFoundError,
    UnsupportedOperation,
)
from termxfer.host import ConnectionProfile, EntryKind, Protocol
from termxfer.host.s3 import S3Bridge, key_for, prefix_for


def _client_error(code, operation="HeadObject"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def sessions(client):
    created = []

    def factory(**kwargs):
        session = MagicMock()
        session.client.return_value = client
        created.append(kwargs)
        return session

    factory.created = created
    return factory


@pytest.fixture
def bridge(sessions):
    profile = ConnectionProfile(Protocol.S3, bucket="photos", region="eu-west-1", aws_profile="work")
    s3 = S3Bridge(profile, session_factory=sessions)
    s3.connect()
    return s3


def _pages(client, pages):
    paginator = MagicMock()
    paginator.paginate.return_value = pages
    client.get_paginator.return_value = paginator
    return paginator


class TestKeys:
    def test_key_mapping(self) -> None:
        assert key_for("/a/b.txt") == "a/b.txt"
        assert prefix_for("/a/") == "a/"
        assert prefix_for("/") == ""


class TestConnect:
    def test_session_uses_profile(self, bridge, sessions, client) -> None:
        assert sessions.created == [{"profile_name": "work", "region_name": "eu-west-1"}]
        client.head_bucket.assert_called_once_with(Bucket="photos")

    def test_missing_bucket(self, sessions, client) -> None:
        client.head_bucket.side_effect = _client_error("404", "HeadBucket")

        with pytest.raises(HostConnectionError):
            S3Bridge(ConnectionProfile(Protocol.S3, bucket="nope"), session_factory=sessions).connect()

    def test_denied_bucket_is_auth_error(self, sessions, client) -> None:
        client.head_bucket.side_effect = _client_error("403", "HeadBucket")

        with pytest.raises(AuthError):
            S3Bridge(ConnectionProfile(Protocol.S3, bucket="b"), session_factory=sessions).connect()


class TestListing:
    def test_prefixes_and_objects(self, bridge, client) -> None:
        modified = datetime(2024, 1, 1, tzinfo=timezone.utc)
        paginator = _pages(
            client,
            [
                {
                    "CommonPrefixes": [{"Prefix": "2024/raw/"}],
                    "Contents": [
                        {"Key": "2024/", "Size": 0, "LastModified": modified},
                        {"Key": "2024/cat.jpg", "Size": 512, "LastModified": modified},
                    ],
                }
            ],
        )

        entries = bridge.list_dir("/2024")

        paginator.paginate.assert_called_once_with(Bucket="photos", Prefix="2024/", Delimiter="/")
        assert [(e.name, e.kind, e.size) for e in entries] == [
            ("cat.jpg", EntryKind.FILE, 512),
            ("raw", EntryKind.DIRECTORY, 0),
        ]
        assert entries[0].mtime == modified.timestamp()

    def test_empty_prefix_is_not_found(self, bridge, client) -> None:
        _pages(client, [{"KeyCount": 0}])

        with pytest.raises(NotFoundError):
            bridge.list_dir("/missing")

    def test_empty_bucket_root_lists_nothing(self, bridge, client) -> None:
        _pages(client, [{"KeyCount": 0}])

        assert bridge.list_dir("/") == []


class TestStat:
    def test_object(self, bridge, client) -> None:
        client.head_object.return_value = {"ContentLength": 9}

        entry = bridge.stat("/a.txt")

        assert entry.kind == EntryKind.FILE
        assert entry.size == 9

    def test_prefix_is_directory(self, bridge, client) -> None:
        client.head_object.side_effect = _client_error("404")
        client.list_objects_v2.return_value = {"KeyCount": 1}

        assert bridge.stat("/2024").kind == EntryKind.DIRECTORY

    def test_missing(self, bridge, client) -> None:
        client.head_object.side_effect = _client_error("NoSuchKey")
        client.list_objects_v2.return_value = {"KeyCount": 0}

        with pytest.raises(NotFoundError):
            bridge.stat("/ghost")


class TestMutations:
    def test_create_dir_writes_marker(self, bridge, client) -> None:
        bridge.create_dir("/new")

        client.put_object.assert_called_once_with(Bucket="photos", Key="new/", Body=b"")

    def test_remove_non_empty_prefix_requires_recursive(self, bridge, client) -> None:
        client.head_object.side_effect = _client_error("404")
        client.list_objects_v2.return_value = {"KeyCount": 1}
        _pages(client, [{"Contents": [{"Key": "d/"}, {"Key": "d/x"}]}])
        client.delete_objects.return_value = {}

        with pytest.raises(HostIOError):
            bridge.remove("/d")
        bridge.remove("/d", recursive=True)

        client.delete_objects.assert_called_once_with(
            Bucket="photos",
            Delete={"Objects": [{"Key": "d/"}, {"Key": "d/x"}], "Quiet": True},
        )

    def test_rename_object_copies_then_deletes(self, bridge, client) -> None:
        client.head_object.return_value = {"ContentLength": 1}

        bridge.rename("/a.txt", "/b.txt")

        client.copy_object.assert_called_once_with(
            Bucket="photos", Key="b.txt", CopySource={"Bucket": "photos", "Key": "a.txt"}
        )
        client.delete_object.assert_called_once_with(Bucket="photos", Key="a.txt")

    def test_rename_prefix_is_unsupported(self, bridge, client) -> None:
        client.head_object.side_effect = _client_error("404")
        client.list_objects_v2.return_value = {"KeyCount": 1}

        with pytest.raises(UnsupportedOperation):
            bridge.rename("/d", "/e")

    def test_upload_happens_on_close(self, bridge, client) -> None:
        with bridge.open_write("/up/file.bin") as stream:
            stream.write(b"payload")
            client.upload_fileobj.assert_not_called()

        spool, bucket, key = client.upload_fileobj.call_args[0]
        assert (bucket, key) == ("photos", "up/file.bin")

    def test_endpoint_failure_is_transient(self, bridge, client) -> None:
        client.get_object.side_effect = [
            EndpointConnectionError(endpoint_url="https://s3"),
            {"Body": MagicMock()},
        ]

        bridge.open_read("/a.txt")

        assert client.get_object.call_count == 2

    def test_unknown_client_error(self, bridge, client) -> None:
        client.put_object.side_effect = _client_error("InvalidBucketState", "PutObject")

        with pytest.raises(HostIOError) as info:
            bridge.create_dir("/x")
        assert not info.value.transient
