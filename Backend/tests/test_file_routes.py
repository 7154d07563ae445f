"""
API tests for the member document library and admin file administration.
"""

import base64

import pytest

from conftest import auth_header, make_user


@pytest.fixture
def member_headers(db_session):
    return auth_header(make_user(db_session, status="approved"))


@pytest.fixture
def admin_headers(admin):
    return auth_header(admin)


class TestDocuments:
    def test_paged_listing_with_filter_menus(self, client, blob_store, member_headers):
        blob_store.add("/StrategicDocs/2022 - Annual Report.pdf")
        blob_store.add("/StrategicDocs/Board/2021_Minutes.docx")
        blob_store.add("/StrategicDocs/photo.jpg")

        resp = client.get("/api/documents", params={"folder": "StrategicDocs", "type": "pdf"}, headers=member_headers)

        body = resp.json()
        assert resp.status_code == 200
        assert [d["title"] for d in body["documents"]] == ["2022 - Annual Report.pdf"]
        assert body["total"] == 1
        assert body["years"] == [2022, 2021]
        assert body["categories"] == ["Board", "StrategicDocs"]

    def test_all_years_option(self, client, blob_store, member_headers):
        blob_store.add("/Docs/2022 - Plan.pdf")
        blob_store.add("/Docs/2019 - Review.pdf")

        everything = client.get("/api/documents", params={"folder": "Docs", "year": "all"}, headers=member_headers)
        one_year = client.get("/api/documents", params={"folder": "Docs", "year": "2019"}, headers=member_headers)
        bad = client.get("/api/documents", params={"folder": "Docs", "year": "soon"}, headers=member_headers)

        assert everything.status_code == 200
        assert everything.json()["total"] == 2
        assert [d["title"] for d in one_year.json()["documents"]] == ["2019 - Review.pdf"]
        assert bad.status_code == 400
        assert bad.json()["error"] == "Invalid year filter: soon"

    def test_folder_is_required(self, client, member_headers):
        assert client.get("/api/documents", headers=member_headers).status_code == 400

    def test_subfolders(self, client, blob_store, member_headers):
        blob_store.folders["/Webinars"] = ["2023 Spring", "2022 Autumn"]

        resp = client.get("/api/documents/subfolders", params={"folder": "Webinars"}, headers=member_headers)

        assert resp.json() == {"folder": "/Webinars", "subfolders": ["2022 Autumn", "2023 Spring"]}


class TestFileAdministration:
    def test_members_cannot_manage_files(self, client, member_headers):
        assert client.get("/api/admin/files", headers=member_headers).status_code == 403

    def test_listing_is_not_cached(self, client, blob_store, admin_headers):
        blob_store.add("/Docs/a.pdf")

        resp = client.get("/api/admin/files", params={"prefix": "/Docs"}, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.headers["cache-control"].startswith("no-store")
        assert [f["fileId"] for f in resp.json()["files"]] == ["file_1"]

    def test_upload_accepts_data_url(self, client, blob_store, admin_headers):
        payload = base64.b64encode(b"%PDF-1.7 body").decode()

        resp = client.post("/api/admin/files/upload", json={
            "fileBase64": f"data:application/pdf;base64,{payload}",
            "fileName": "report.pdf",
            "folder": "Docs",
            "tags": ["board"],
        }, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json()["message"] == "Upload successful"
        upload = blob_store.uploads[0]
        assert upload["content"] == b"%PDF-1.7 body"
        assert upload["folder"] == "/Docs"
        assert upload["file_name"].endswith("-report.pdf")
        assert upload["file_name"].split("-", 1)[0].isdigit()

    def test_upload_rejects_invalid_base64(self, client, admin_headers):
        resp = client.post("/api/admin/files/upload", json={
            "fileBase64": "not base64!!", "fileName": "x.pdf", "folder": "Docs",
        }, headers=admin_headers)

        assert resp.status_code == 400
        assert resp.json()["error"] == "fileBase64 is not valid base64"

    def test_delete_move_rename(self, client, blob_store, admin_headers):
        stored = blob_store.add("/Docs/old.pdf")

        renamed = client.post("/api/admin/files/rename", json={"fileId": stored.file_id, "newFileName": "new.pdf"},
                              headers=admin_headers)
        moved = client.post("/api/admin/files/move", json={"sourceFilePath": "/Docs/new.pdf", "destinationPath": "/Archive"},
                            headers=admin_headers)
        deleted = client.post("/api/admin/files/delete", json={"fileId": stored.file_id}, headers=admin_headers)

        assert renamed.json()["file"]["fileId"] == stored.file_id
        assert renamed.json()["file"]["name"] == "new.pdf"
        assert moved.json() == {"ok": True, "file": None}
        assert blob_store.moves == [("/Docs/new.pdf", "/Archive")]
        assert deleted.status_code == 200
        assert blob_store.files == {}
