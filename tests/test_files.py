"""
Tests for byte delivery with range requests
"""


class TestFileStreaming:

    def test_full_file(self, client, post_clip, video_bytes):
        clip = post_clip().json()["clip"]

        response = client.get(f"/files/{clip['file_path']}")

        assert response.status_code == 200
        assert response.headers["accept-ranges"] == "bytes"
        assert response.headers["content-type"].startswith("video/mp4")
        assert int(response.headers["content-length"]) == len(video_bytes)
        assert response.content == video_bytes

    def test_range_request(self, client, post_clip, video_bytes):
        clip = post_clip().json()["clip"]

        response = client.get(f"/files/{clip['file_path']}", headers={"Range": "bytes=100-199"})

        assert response.status_code == 206
        assert response.headers["content-range"] == f"bytes 100-199/{len(video_bytes)}"
        assert response.headers["content-length"] == "100"
        assert response.content == video_bytes[100:200]

    def test_suffix_range(self, client, post_clip, video_bytes):
        clip = post_clip().json()["clip"]

        response = client.get(f"/files/{clip['file_path']}", headers={"Range": "bytes=-10"})

        assert response.status_code == 206
        assert response.content == video_bytes[-10:]

    def test_unsatisfiable_range(self, client, post_clip, video_bytes):
        clip = post_clip().json()["clip"]

        response = client.get(f"/files/{clip['file_path']}", headers={"Range": f"bytes={len(video_bytes)}-"})

        assert response.status_code == 416
        assert response.headers["content-range"] == f"bytes */{len(video_bytes)}"

    def test_content_type_from_extension(self, client, post_clip):
        clip = post_clip(filename="clip.webm", content_type="video/webm").json()["clip"]

        response = client.get(f"/files/{clip['file_path']}")

        assert response.headers["content-type"].startswith("video/webm")

    def test_private_clip_bytes_still_served(self, client, post_clip, video_bytes):
        clip = post_clip().json()["clip"]
        assert clip["is_private"] is True

        response = client.get(f"/files/{clip['file_path']}")
        assert response.status_code == 200
        assert response.content == video_bytes

    def test_missing_file(self, client):
        response = client.get("/files/videos/nothing.mp4")
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_deleted_clip_file_gone(self, client, post_clip):
        clip = post_clip().json()["clip"]
        client.delete(f"/clips/{clip['id']}")

        assert client.get(f"/files/{clip['file_path']}").status_code == 404

    def test_unknown_range_unit_serves_full_file(self, client, post_clip, video_bytes):
        clip = post_clip().json()["clip"]

        response = client.get(f"/files/{clip['file_path']}", headers={"Range": "items=0-10"})

        assert response.status_code == 200
        assert "content-range" not in response.headers
        assert response.content == video_bytes
