import os
import subprocess
import sys
from datetime import datetime, timedelta, timezone
from io import StringIO
from pathlib import Path
from unittest import mock

from django.core.files.storage import FileSystemStorage
from django.core.management import call_command

from filestore import store
from filestore.models import parse_iso

from .base import ArchiveAPITestCase, make_file_bytes, make_png_bytes


class TestUploadAndListing(ArchiveAPITestCase):
    """
    Upload routing (anonymous -> gallery with expiry, registered -> archive or gallery)
    and the derived listing views: folders, favorites, search, expiry filtering.
    """

    def test_01_anonymous_upload_goes_to_gallery_with_deletion_date(self):
        r = self._upload_bytes(make_file_bytes(1000, seed=1), "notes.txt")
        self.assertEqual(r.status_code, 201, r.content)
        d = r.json()
        self.assertEqual(d["uploaderId"], "anonymous")
        self.assertTrue(d["inGallery"])
        self.assertEqual(d["name"], "notes.txt")
        self.assertEqual(d["type"], "text/plain")
        self.assertEqual(d["size"], 1000)
        self.assertEqual(d["folder"], "root")
        self.assertFalse(d["isFavorite"])
        self.assertEqual(d["url"], f"/media/uploads/{d['uniqueName']}-notes.txt")
        self.assertEqual(d["url"], d["filePath"])

        deletion = parse_iso(d["deletionDate"])
        expected = datetime.now(timezone.utc) + timedelta(days=30)
        self.assertLess(abs((deletion - expected).total_seconds()), 60)

        self.assertTrue(os.path.exists(self._blob_path(d["url"])))
        gallery = self._document("files.json")
        self.assertEqual([row["uniqueName"] for row in gallery], [d["uniqueName"]])

        listed = self._list()
        self.assertEqual(listed.status_code, 200)
        self.assertEqual([row["uniqueName"] for row in listed.json()], [d["uniqueName"]])

    def test_02_registered_upload_defaults_to_private_archive(self):
        u1 = self._signup("alice")
        u2 = self._signup("bob")

        r = self._upload_bytes(make_file_bytes(500, seed=2), "diary.pdf", self.as_user(u1))
        self.assertEqual(r.status_code, 201)
        d = r.json()
        self.assertFalse(d["inGallery"])
        self.assertEqual(d["uploaderId"], u1)
        self.assertIsNone(d["deletionDate"])

        self.assertEqual(self._list().json(), [])
        mine = self._list(self.as_user(u1), {"currentFolder": "archive"}).json()
        self.assertEqual([row["uniqueName"] for row in mine], [d["uniqueName"]])
        theirs = self._list(self.as_user(u2), {"currentFolder": "archive"}).json()
        self.assertEqual(theirs, [])

    def test_03_registered_upload_to_gallery(self):
        u1 = self._signup("alice")
        r = self._upload_bytes(make_file_bytes(500, seed=3), "public.pdf", self.as_user(u1), add_to_gallery=True)
        self.assertEqual(r.status_code, 201)
        self.assertTrue(r.json()["inGallery"])
        self.assertEqual(len(self._list().json()), 1)
        self.assertEqual(self._document("archive.json"), [])

    def test_04_upload_without_file_is_rejected(self):
        r = self.client.post(self.base, {}, format="multipart")
        self.assertEqual(r.status_code, 400)
        self.assertIn("file", r.json())

    def test_05_unknown_registered_user_cannot_list(self):
        r = self._list(self.as_user("ghost"))
        self.assertEqual(r.status_code, 404)
        self.assertIn("User not found", r.json()["detail"])

    def test_06_folder_filters_and_search(self):
        self._upload_bytes(make_png_bytes(), "Sunset.png")
        self._upload_bytes(make_file_bytes(100, seed=4), "clip.mp4")
        self._upload_bytes(make_file_bytes(100, seed=5), "song.mp3")
        self._upload_bytes(make_file_bytes(100, seed=6), "sunset-notes.txt")

        names = lambda r: sorted(row["name"] for row in r.json())
        self.assertEqual(names(self._list(params={"currentFolder": "images"})), ["Sunset.png"])
        self.assertEqual(names(self._list(params={"currentFolder": "videos"})), ["clip.mp4"])
        self.assertEqual(names(self._list(params={"currentFolder": "audio"})), ["song.mp3"])
        self.assertEqual(names(self._list(params={"search": "SUNSET"})), ["Sunset.png", "sunset-notes.txt"])
        self.assertEqual(names(self._list(params={"search": "sunset", "currentFolder": "images"})), ["Sunset.png"])
        self.assertEqual(len(self._list().json()), 4)

    def test_07_image_is_its_own_preview_and_audio_keeps_uploaded_preview(self):
        img = self._upload_bytes(make_png_bytes(), "pic.png").json()
        self.assertEqual(img["previewImageUrl"], img["url"])

        audio = self._upload_bytes(
            make_file_bytes(300, seed=7), "track.mp3", preview=("cover.png", make_png_bytes())
        ).json()
        self.assertNotEqual(audio["previewImageUrl"], audio["url"])
        self.assertTrue(audio["previewImageUrl"].endswith("-preview-cover.png"))
        self.assertTrue(os.path.exists(self._blob_path(audio["previewImageUrl"])))

        # previews are only kept for audio/video
        doc = self._upload_bytes(
            make_file_bytes(300, seed=8), "doc.pdf", preview=("cover.png", make_png_bytes())
        ).json()
        self.assertIsNone(doc["previewImageUrl"])

    def test_08_expired_anonymous_uploads_are_hidden_and_purged(self):
        keep = self._upload_bytes(make_file_bytes(100, seed=9), "keep.txt").json()
        old = self._upload_bytes(make_file_bytes(100, seed=10), "old.txt").json()

        gallery = store.read_gallery()
        for item in gallery:
            if item.unique_name == old["uniqueName"]:
                item.deletion_date = "2000-01-01T00:00:00.000Z"
        store.write_gallery(gallery)

        listed = [row["uniqueName"] for row in self._list().json()]
        self.assertEqual(listed, [keep["uniqueName"]])

        out = StringIO()
        call_command("purge_expired_uploads", stdout=out)
        self.assertIn("Purged 1", out.getvalue())
        self.assertFalse(os.path.exists(self._blob_path(old["url"])))
        self.assertTrue(os.path.exists(self._blob_path(keep["url"])))
        self.assertEqual([row["uniqueName"] for row in self._document("files.json")], [keep["uniqueName"]])

    def test_09_retrieve_single_file(self):
        u1 = self._signup("alice")
        u2 = self._signup("bob")
        d = self._upload_bytes(make_file_bytes(100, seed=11), "private.txt", self.as_user(u1)).json()

        self.assertEqual(self.client.get(self._item_url(d["uniqueName"]), **self.as_user(u1)).status_code, 200)
        # archive entries are only visible to their owner
        self.assertEqual(self.client.get(self._item_url(d["uniqueName"]), **self.as_user(u2)).status_code, 404)
        self.assertEqual(self.client.get(self._item_url(d["uniqueName"])).status_code, 404)

    '''
        Purge from the command line:
            manage.py runs in a fresh interpreter, so the command imports the library
            before any view or throttle class is loaded
    '''
    def test_10_purge_command_runs_in_fresh_process(self):
        keep = self._upload_bytes(make_file_bytes(100, seed=12), "keep.txt").json()
        old = self._upload_bytes(make_file_bytes(100, seed=13), "old.txt").json()
        gallery = store.read_gallery()
        for item in gallery:
            if item.unique_name == old["uniqueName"]:
                item.deletion_date = "2000-01-01T00:00:00.000Z"
        store.write_gallery(gallery)

        backend_dir = Path(__file__).resolve().parents[2]
        env = dict(
            os.environ,
            DJANGO_SETTINGS_MODULE="core.settings",
            PIXEL_ARCHIVE_DATA_DIR=self.temp_data_dir,
            PIXEL_ARCHIVE_MEDIA_ROOT=self.temp_media_dir,
        )
        result = subprocess.run(
            [sys.executable, str(backend_dir / "manage.py"), "purge_expired_uploads"],
            cwd=backend_dir, env=env, capture_output=True, text=True, timeout=120,
        )
        self.assertEqual(result.returncode, 0, result.stderr)
        self.assertIn("Purged 1", result.stdout)
        self.assertFalse(os.path.exists(self._blob_path(old["url"])))
        self.assertEqual([row["uniqueName"] for row in self._document("files.json")], [keep["uniqueName"]])

    def test_11_failed_metadata_write_removes_stored_bytes(self):
        # the bytes (and the audio preview) are on disk before files.json is written
        with mock.patch("filestore.store.write_gallery", side_effect=OSError("disk full")):
            r = self._upload_bytes(make_file_bytes(300, seed=14), "song.mp3", preview=("cover.png", make_png_bytes()))
        self.assertEqual(r.status_code, 500)
        self.assertEqual(r.json()["detail"], "Storage operation failed")
        self.assertEqual(os.listdir(os.path.join(self.temp_media_dir, "uploads")), [])
        self.assertEqual(self._document("files.json"), [])


class TestMovesAndFavorites(ArchiveAPITestCase):

    def test_01_patch_moves_own_file_between_archive_and_gallery(self):
        u1 = self._signup("alice")
        u2 = self._signup("bob")
        d = self._upload_bytes(make_file_bytes(100, seed=20), "a.txt", self.as_user(u1)).json()
        url = self._item_url(d["uniqueName"])

        # somebody else cannot move it
        r = self.client.patch(url, {"inGallery": True}, format="json", **self.as_user(u2))
        self.assertEqual(r.status_code, 404)

        r = self.client.patch(url, {"inGallery": True}, format="json", **self.as_user(u1))
        self.assertEqual(r.status_code, 200, r.content)
        self.assertTrue(r.json()["file"]["inGallery"])
        self.assertEqual(self._document("archive.json"), [])
        self.assertEqual([row["uniqueName"] for row in self._document("files.json")], [d["uniqueName"]])
        self.assertTrue(self._document("files.json")[0]["inGallery"])

        # already in the gallery: nothing to move out of the archive
        r = self.client.patch(url, {"inGallery": True}, format="json", **self.as_user(u1))
        self.assertEqual(r.status_code, 404)

        r = self.client.patch(url, {"inGallery": False}, format="json", **self.as_user(u1))
        self.assertEqual(r.status_code, 200)
        self.assertEqual(self._document("files.json"), [])
        self.assertFalse(self._document("archive.json")[0]["inGallery"])

    def test_02_favorites_update_flag_and_user_list(self):
        u1 = self._signup("alice")
        d = self._upload_bytes(make_file_bytes(100, seed=21), "fav.txt").json()
        url = self._item_url(d["uniqueName"])

        for _ in range(2):
            r = self.client.patch(url, {"isFavorite": True}, format="json", **self.as_user(u1))
            self.assertEqual(r.status_code, 200)
        user = next(u for u in self._document("users.json") if u["id"] == u1)
        self.assertEqual(user["favoriteFileUniqueNames"], [d["uniqueName"]])
        self.assertTrue(self._document("files.json")[0]["isFavorite"])

        favs = self._list(self.as_user(u1), {"currentFolder": "favorites"}).json()
        self.assertEqual([row["uniqueName"] for row in favs], [d["uniqueName"]])

        r = self.client.patch(url, {"isFavorite": False}, format="json", **self.as_user(u1))
        self.assertEqual(r.status_code, 200)
        self.assertEqual(self._list(self.as_user(u1), {"currentFolder": "favorites"}).json(), [])
        self.assertFalse(self._document("files.json")[0]["isFavorite"])

    def test_03_anonymous_may_only_favorite(self):
        d = self._upload_bytes(make_file_bytes(100, seed=22), "pub.txt").json()
        url = self._item_url(d["uniqueName"])

        r = self.client.patch(url, {"inGallery": False}, format="json")
        self.assertEqual(r.status_code, 400)
        self.assertIn("Missing isFavorite", r.json()["detail"])

        r = self.client.patch(url, {"isFavorite": True}, format="json")
        self.assertEqual(r.status_code, 200)
        self.assertTrue(self._document("files.json")[0]["isFavorite"])

        r = self.client.patch(self._item_url("does-not-exist"), {"isFavorite": True}, format="json")
        self.assertEqual(r.status_code, 404)

    def test_04_registered_patch_needs_an_operation(self):
        u1 = self._signup("alice")
        d = self._upload_bytes(make_file_bytes(100, seed=23), "x.txt", self.as_user(u1)).json()
        r = self.client.patch(self._item_url(d["uniqueName"]), {}, format="json", **self.as_user(u1))
        self.assertEqual(r.status_code, 400)
        self.assertIn("Invalid patch operation", r.json()["detail"])

        r = self.client.patch(self._item_url(d["uniqueName"]), {"isFavorite": True}, format="json",
                              **self.as_user("ghost"))
        self.assertEqual(r.status_code, 404)

    def test_05_archive_and_unarchive_actions(self):
        d = self._upload_bytes(make_file_bytes(100, seed=24), "move.txt").json()
        url = self._item_url(d["uniqueName"], "archive/")

        r = self.client.post(url)
        self.assertEqual(r.status_code, 200)
        self.assertFalse(r.json()["file"]["inGallery"])
        self.assertEqual(self._document("files.json"), [])
        self.assertEqual(len(self._document("archive.json")), 1)

        # not in the gallery any more
        self.assertEqual(self.client.post(url).status_code, 404)

        r = self.client.delete(url)
        self.assertEqual(r.status_code, 200)
        self.assertTrue(r.json()["file"]["inGallery"])
        self.assertEqual(self._document("archive.json"), [])
        self.assertEqual(len(self._document("files.json")), 1)

        self.assertEqual(self.client.delete(url).status_code, 404)


class TestDeleteAndRename(ArchiveAPITestCase):

    def test_01_delete_anonymous_file_removes_blob_and_metadata(self):
        d = self._upload_bytes(make_file_bytes(100, seed=30), "bye.txt").json()
        path = self._blob_path(d["url"])
        self.assertTrue(os.path.exists(path))

        r = self.client.delete(self._item_url(d["uniqueName"]))
        self.assertEqual(r.status_code, 204)
        self.assertFalse(os.path.exists(path))
        self.assertEqual(self._document("files.json"), [])

        self.assertEqual(self.client.delete(self._item_url(d["uniqueName"])).status_code, 404)

    def test_02_only_owner_deletes_registered_files(self):
        u1 = self._signup("alice")
        u2 = self._signup("bob")
        d = self._upload_bytes(make_file_bytes(100, seed=31), "mine.txt", self.as_user(u1), add_to_gallery=True).json()

        r = self.client.delete(self._item_url(d["uniqueName"]), **self.as_user(u2))
        self.assertEqual(r.status_code, 403)
        self.assertIn("Permission denied", r.json()["detail"])
        r = self.client.delete(self._item_url(d["uniqueName"]))
        self.assertEqual(r.status_code, 403)

        self.assertEqual(self.client.delete(self._item_url(d["uniqueName"]), **self.as_user(u1)).status_code, 204)

    def test_03_owner_deletes_archived_file(self):
        u1 = self._signup("alice")
        u2 = self._signup("bob")
        d = self._upload_bytes(make_file_bytes(100, seed=32), "secret.txt", self.as_user(u1)).json()

        # archive entries of other users are invisible
        self.assertEqual(self.client.delete(self._item_url(d["uniqueName"]), **self.as_user(u2)).status_code, 404)
        self.assertEqual(self.client.delete(self._item_url(d["uniqueName"]), **self.as_user(u1)).status_code, 204)
        self.assertEqual(self._document("archive.json"), [])

    def test_04_delete_clears_favorites_of_every_user(self):
        u1 = self._signup("alice")
        u2 = self._signup("bob")
        d = self._upload_bytes(make_file_bytes(100, seed=33), "liked.txt").json()
        url = self._item_url(d["uniqueName"])
        self.client.patch(url, {"isFavorite": True}, format="json", **self.as_user(u1))
        self.client.patch(url, {"isFavorite": True}, format="json", **self.as_user(u2))

        self.assertEqual(self.client.delete(url, **self.as_user(u1)).status_code, 204)
        for user in self._document("users.json"):
            self.assertEqual(user["favoriteFileUniqueNames"], [])

    def test_05_delete_tolerates_missing_blob_and_removes_preview(self):
        audio = self._upload_bytes(
            make_file_bytes(300, seed=34), "track.mp3", preview=("cover.png", make_png_bytes())
        ).json()
        os.remove(self._blob_path(audio["url"]))
        preview_path = self._blob_path(audio["previewImageUrl"])

        r = self.client.delete(self._item_url(audio["uniqueName"]))
        self.assertEqual(r.status_code, 204)
        self.assertFalse(os.path.exists(preview_path))
        self.assertEqual(self._document("files.json"), [])

    def test_06_rename_keeps_extension_and_moves_blob(self):
        d = self._upload_bytes(make_png_bytes(), "holiday.png").json()
        old_path = self._blob_path(d["url"])

        r = self.client.put(self._item_url(d["uniqueName"]), {"newName": "beach"}, format="json")
        self.assertEqual(r.status_code, 200, r.content)
        f = r.json()["file"]
        self.assertEqual(f["name"], "beach.png")
        self.assertEqual(f["url"], f"/media/uploads/{d['uniqueName']}-beach.png")
        self.assertEqual(f["filePath"], f["url"])
        # an image previews itself, so the preview follows the rename
        self.assertEqual(f["previewImageUrl"], f["url"])
        self.assertNotEqual(f["modifiedAt"], "")
        self.assertFalse(os.path.exists(old_path))
        self.assertTrue(os.path.exists(self._blob_path(f["url"])))
        self.assertEqual(self._document("files.json")[0]["name"], "beach.png")

        # an explicit extension is kept as given
        r = self.client.put(self._item_url(d["uniqueName"]), {"newName": "beach.jpeg"}, format="json")
        self.assertEqual(r.json()["file"]["name"], "beach.jpeg")

    def test_07_rename_audio_renames_preview(self):
        audio = self._upload_bytes(
            make_file_bytes(300, seed=35), "track.mp3", preview=("cover.png", make_png_bytes())
        ).json()
        preview_uuid = audio["previewImageUrl"].rsplit("/", 1)[-1].split("-preview-")[0]

        r = self.client.put(self._item_url(audio["uniqueName"]), {"newName": "anthem.mp3"}, format="json")
        self.assertEqual(r.status_code, 200)
        f = r.json()["file"]
        self.assertEqual(f["name"], "anthem.mp3")
        self.assertEqual(f["previewImageUrl"], f"/media/uploads/{preview_uuid}-preview-anthem.png")
        self.assertTrue(os.path.exists(self._blob_path(f["previewImageUrl"])))

    def test_08_rename_rules_for_registered_users(self):
        u1 = self._signup("alice")
        u2 = self._signup("bob")
        d = self._upload_bytes(make_file_bytes(100, seed=36), "plan.txt", self.as_user(u1)).json()
        url = self._item_url(d["uniqueName"])

        self.assertEqual(self.client.put(url, {"newName": "x"}, format="json", **self.as_user(u2)).status_code, 404)
        # anonymous visitors only see the gallery
        self.assertEqual(self.client.put(url, {"newName": "x"}, format="json").status_code, 404)

        r = self.client.put(url, {"newName": "roadmap"}, format="json", **self.as_user(u1))
        self.assertEqual(r.status_code, 200)
        self.assertEqual(self._document("archive.json")[0]["name"], "roadmap.txt")

    def test_09_rename_rejects_bad_names(self):
        d = self._upload_bytes(make_file_bytes(100, seed=37), "a.txt").json()
        url = self._item_url(d["uniqueName"])
        self.assertEqual(self.client.put(url, {"newName": "../escape"}, format="json").status_code, 400)
        self.assertEqual(self.client.put(url, {}, format="json").status_code, 400)

    def test_10_rename_with_missing_blob_is_a_storage_error(self):
        d = self._upload_bytes(make_file_bytes(100, seed=38), "gone.txt").json()
        os.remove(self._blob_path(d["url"]))

        r = self.client.put(self._item_url(d["uniqueName"]), {"newName": "still-gone"}, format="json")
        self.assertEqual(r.status_code, 500)
        self.assertIn("Error renaming file", r.json()["detail"])
        # metadata untouched
        self.assertEqual(self._document("files.json")[0]["name"], "gone.txt")

    def test_11_delete_storage_failure_keeps_metadata(self):
        d = self._upload_bytes(make_file_bytes(100, seed=39), "stuck.txt").json()

        # anything but a missing file is a real storage error: 500 and the row stays
        with mock.patch.object(FileSystemStorage, "delete", side_effect=PermissionError("read-only")):
            r = self.client.delete(self._item_url(d["uniqueName"]))
        self.assertEqual(r.status_code, 500)
        self.assertIn("Failed to delete file from storage", r.json()["detail"])
        self.assertEqual([row["uniqueName"] for row in self._document("files.json")], [d["uniqueName"]])
        self.assertTrue(os.path.exists(self._blob_path(d["url"])))

        # once storage recovers the same delete goes through
        self.assertEqual(self.client.delete(self._item_url(d["uniqueName"])).status_code, 204)


class TestMetadata(ArchiveAPITestCase):

    def test_01_image_metadata(self):
        d = self._upload_bytes(make_png_bytes(4, 3), "tiny.png").json()
        r = self.client.get(self._item_url(d["uniqueName"], "metadata/"))
        self.assertEqual(r.status_code, 200)
        meta = r.json()["metadata"]
        self.assertEqual(meta["Dimensions"], "4x3")
        self.assertEqual(meta["Kind"], "image")
        self.assertEqual(meta["MimeType"], "image/png")
        self.assertTrue(meta["FileSize"].endswith("Bytes"))

    def test_02_document_metadata_and_missing_blob(self):
        d = self._upload_bytes(make_file_bytes(2048, seed=40), "report.pdf").json()
        meta = self.client.get(self._item_url(d["uniqueName"], "metadata/")).json()["metadata"]
        self.assertEqual(meta["FileSize"], "2 KB")
        self.assertEqual(meta["Kind"], "pdf")
        self.assertNotIn("Dimensions", meta)

        os.remove(self._blob_path(d["url"]))
        self.assertEqual(self.client.get(self._item_url(d["uniqueName"], "metadata/")).status_code, 404)
        self.assertEqual(self.client.get(self._item_url("nope", "metadata/")).status_code, 404)
