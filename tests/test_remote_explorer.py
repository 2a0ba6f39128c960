"""Tests for the RemoteExplorer."""

from unittest.mock import Mock

import pytest

from pydrivemap.exceptions import (
    DriveInvalidResponseError,
    DriveNetworkError,
    DriveNotFoundError,
    InvalidArgumentError,
)
from pydrivemap.models import FOLDER_MIME_TYPE
from pydrivemap.remote_explorer import RemoteExplorer


def _folder(remote_id, name, parent="R"):
    return {
        "id": remote_id,
        "name": name,
        "parents": [parent],
        "mimeType": FOLDER_MIME_TYPE,
    }


class TestPagination:
    """Tests for transparent pagination."""

    def test_all_pages_are_collected(self):
        client = Mock()
        client.list_files.side_effect = [
            {"files": [_folder("A", "docs")], "nextPageToken": "p2"},
            {"files": [_folder("B", "music")]},
        ]
        explorer = RemoteExplorer(client, page_size=1)

        items = explorer.get_subdirs("R")

        assert [item.id for item in items] == ["A", "B"]
        assert client.list_files.call_count == 2
        second = client.list_files.call_args_list[1]
        assert second.kwargs["page_token"] == "p2"
        assert second.kwargs["page_size"] == 1

    def test_failure_on_later_page_propagates(self):
        """A failing page fails the whole listing, no partial results."""
        client = Mock()
        client.list_files.side_effect = [
            {"files": [_folder("A", "docs")], "nextPageToken": "p2"},
            DriveNetworkError("timeout"),
        ]
        with pytest.raises(DriveNetworkError):
            RemoteExplorer(client).get_subdirs("R")

    @pytest.mark.parametrize(
        "response",
        [
            {"files": [{"name": "no-id", "mimeType": FOLDER_MIME_TYPE}]},
            {"files": None},
            {"files": [{"id": "A", "size": "big"}]},
            {"files": ["A"]},
            ["A"],
        ],
    )
    def test_malformed_listing_raises_invalid_response(self, response):
        client = Mock()
        client.list_files.return_value = response

        with pytest.raises(DriveInvalidResponseError):
            RemoteExplorer(client).get_subdirs("R")

    def test_malformed_item_raises_invalid_response(self):
        client = Mock()
        client.get_file.return_value = {"name": "no-id"}

        with pytest.raises(DriveInvalidResponseError):
            RemoteExplorer(client).find_by_id("A")


class TestQueries:
    """Tests for the search queries sent to the client."""

    def _query(self, client):
        return client.list_files.call_args.kwargs["query"]

    def test_get_subdirs_query(self):
        client = Mock()
        client.list_files.return_value = {"files": []}

        RemoteExplorer(client).get_subdirs("R")

        query = self._query(client)
        assert "'R' in parents" in query
        assert f"mimeType = '{FOLDER_MIME_TYPE}'" in query
        assert "trashed = false" in query

    def test_get_contents_query(self):
        client = Mock()
        client.list_files.return_value = {"files": []}

        RemoteExplorer(client).get_contents("R")

        assert self._query(client) == "'R' in parents and trashed = false"

    def test_names_are_quoted(self):
        client = Mock()
        client.list_files.return_value = {"files": []}

        RemoteExplorer(client).find_folders_by_name("it's", parent_id="R")

        assert "name = 'it\\'s'" in self._query(client)

    def test_find_folders_by_name_not_found(self):
        client = Mock()
        client.list_files.side_effect = DriveNotFoundError("gone")
        assert RemoteExplorer(client).find_folders_by_name("docs") == []

    def test_list_all_folders(self):
        client = Mock()
        client.list_files.return_value = {"files": [_folder("A", "docs")]}

        folders = RemoteExplorer(client).list_all_folders()

        assert folders[0].is_folder
        assert "in parents" not in self._query(client)


class TestItems:
    """Tests for single-item lookups."""

    def test_find_by_id(self):
        client = Mock()
        client.get_file.return_value = _folder("A", "docs")

        item = RemoteExplorer(client).find_by_id("A")

        assert item.name == "docs"
        assert item.parents == ["R"]

    def test_find_by_id_missing(self):
        client = Mock()
        client.get_file.side_effect = DriveNotFoundError("gone")
        assert RemoteExplorer(client).find_by_id("A") is None

    def test_get_path_to_root(self):
        items = {
            "B": _folder("B", "sub", parent="A"),
            "A": _folder("A", "docs", parent="R"),
        }
        client = Mock()
        client.get_file.side_effect = lambda remote_id: items[remote_id]

        chain = RemoteExplorer(client).get_path_to_root("B", "R")

        assert [item.id for item in chain] == ["B", "A"]
        assert RemoteExplorer(client).get_parents("B") == ["A"]

    def test_get_path_to_root_outside_root(self):
        client = Mock()
        client.get_file.return_value = {"id": "X", "name": "x", "parents": []}
        with pytest.raises(InvalidArgumentError):
            RemoteExplorer(client).get_path_to_root("X", "R")

    def test_get_path_to_root_cycle(self):
        items = {
            "A": _folder("A", "a", parent="B"),
            "B": _folder("B", "b", parent="A"),
        }
        client = Mock()
        client.get_file.side_effect = lambda remote_id: items[remote_id]
        with pytest.raises(InvalidArgumentError, match="cycle"):
            RemoteExplorer(client).get_path_to_root("A", "R")

    def test_upload_returns_item(self, tmp_path):
        client = Mock()
        client.upload_file.return_value = {"id": "F", "name": "a.txt", "parents": ["R"]}

        item = RemoteExplorer(client).upload(tmp_path / "a.txt", "R")

        assert item.id == "F"
        client.upload_file.assert_called_once_with(tmp_path / "a.txt", "R")
