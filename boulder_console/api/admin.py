"""Console endpoints, each bound once to its path and failure message.

Parameters follow the server handlers:

- ``list_objects``: query ``bucket``, ``prefix``, ``marker``.
- ``create_bucket``: body ``{"name", "region"}``.
- ``delete_bucket``: query ``name``.
- ``create_folder``: body ``{"bucket", "folder"}``.
- ``put_object``: multipart ``bucket``, ``object``, ``contentType``, ``file``.
- ``delete_objects``: body ``{"bucket", "keys"}``; keys ending in ``/`` are folders.
- ``get_object``: body ``{"bucket", "files", "filename"}``; several files or a
  folder arrive as a zip archive.
"""

from __future__ import annotations

from boulder_console.api.calls import ApiCalls

__all__ = ["ConsoleAPI"]


class ConsoleAPI:
    def __init__(self, calls: ApiCalls) -> None:
        self.get_stats = calls.get("/stats", "Error fetching stats")

        # Buckets and objects
        self.list_buckets = calls.get("/bucket/list", "Error listing buckets")
        self.create_bucket = calls.put("/bucket/create", "Error creating bucket")
        self.delete_bucket = calls.delete("/bucket/delete", "Error deleting bucket")
        self.list_objects = calls.get("/bucket/objects", "Error listing objects")
        self.create_folder = calls.put("/bucket/folder", "Error creating folder")
        self.put_object = calls.upload("/bucket/putobject", "Failed to put object")
        self.delete_objects = calls.post("/bucket/deleteobject", "Failed to delete object")
        self.get_object = calls.download("/bucket/getobject", "Failed to download file")

        # IAM
        self.get_user = calls.get("/user/info", "Error fetching user")
        self.list_users = calls.get("/user/list", "Error listing users")
        self.create_user = calls.post("/user/create", "Error creating user")
        self.update_user = calls.post("/user/update", "Error updating user")
        self.delete_user = calls.delete("/user/delete", "Error deleting user")

        self.get_group = calls.get("/group/get", "Error fetching group")
        self.list_groups = calls.get("/group/list", "Error listing groups")
        self.create_group = calls.post("/group/create", "Error creating group")
        self.update_group = calls.post("/group/update", "Error updating group")
        self.delete_group = calls.delete("/group/delete", "Error deleting group")

        self.get_role = calls.get("/role/get", "Error fetching role")
        self.list_roles = calls.get("/role/list", "Error listing roles")
        self.create_role = calls.post("/role/create", "Error creating role")
        self.update_role = calls.post("/role/update", "Error updating role")
        self.delete_role = calls.delete("/role/delete", "Error deleting role")

        self.get_policy = calls.get("/policy/get", "Error fetching policy")
        self.list_policies = calls.get("/policy/list", "Error listing policies")
        self.create_policy = calls.post("/policy/create", "Error creating policy")
        self.update_policy = calls.post("/policy/update", "Error updating policy")
        self.delete_policy = calls.delete("/policy/delete", "Error deleting policy")

        self.list_access_keys = calls.get("/accesskey/list", "Error listing access keys")
        self.create_access_key = calls.post("/accesskey/create", "Error creating access key")
        self.update_access_key = calls.post("/accesskey/update", "Error updating access key")
        self.delete_access_key = calls.delete("/accesskey/delete", "Error deleting access key")
