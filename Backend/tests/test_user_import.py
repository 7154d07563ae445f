"""
Tests for CSV/XLSX parsing and per-row member creation.
"""

import io

import pytest
from openpyxl import Workbook
from sqlalchemy import select

from portal.errors import ValidationError
from portal.models.user import User
from portal.services.user_import_service import (
    UserImportService,
    normalize_header,
    parse_csv,
    parse_upload,
    parse_xlsx,
)
from portal.utils.security import verify_password

from conftest import make_user


class TestParsing:
    @pytest.mark.parametrize("raw,expected", [
        ("Email Address", "email"),
        (" Full Name ", "full_name"),
        ("Organisation", "organization_name"),
        ("Job Title", "role_job_title"),
        ("Favourite Colour", "favourite_colour"),
    ])
    def test_normalize_header(self, raw, expected):
        assert normalize_header(raw) == expected

    def test_csv_with_bom_and_blank_lines(self):
        content = "\ufeffEmail,Name,Organization\r\na@example.com, Ann ,Acme\r\n,,\r\n".encode("utf-8")

        assert parse_csv(content) == [{"email": "a@example.com", "full_name": "Ann", "organization_name": "Acme"}]

    def test_xlsx(self):
        wb = Workbook()
        ws = wb.active
        ws.append(["Email", "Full Name", "Organization", "Is Admin"])
        ws.append(["b@example.com", "Bea", "Acme", "no"])
        buffer = io.BytesIO()
        wb.save(buffer)

        rows = parse_xlsx(buffer.getvalue())

        assert rows == [{"email": "b@example.com", "full_name": "Bea", "organization_name": "Acme", "is_admin": "no"}]

    def test_corrupt_xlsx(self):
        with pytest.raises(ValidationError):
            parse_upload("members.xlsx", b"definitely not a zip")

    def test_unknown_extension(self):
        with pytest.raises(ValidationError):
            parse_upload("members.json", b"[]")


class TestCreateRows:
    def test_default_password_is_hashed_once_and_shared(self, db_session):
        service = UserImportService(db_session, default_password="Welcome123!")

        result = service.bulk_create([
            {"email": "one@example.com", "full_name": "One", "organization_name": "Acme"},
            {"email": "two@example.com", "full_name": "Two", "organization_name": "Acme"},
            {"email": "three@example.com", "full_name": "Three", "organization_name": "Acme", "password": "Own12345"},
        ])

        assert result["created"] == 3
        users = {u.email: u for u in db_session.execute(select(User)).scalars()}
        assert users["one@example.com"].password_hash == users["two@example.com"].password_hash
        assert verify_password("Welcome123!", users["one@example.com"].password_hash)
        assert verify_password("Own12345", users["three@example.com"].password_hash)
        assert all(u.approval_status == "pending" and u.is_first_time is False for u in users.values())

    def test_row_failures_are_independent(self, db_session):
        make_user(db_session, "taken@example.com")
        service = UserImportService(db_session, default_password="Welcome123!")

        result = service.bulk_create([
            {"email": "not-an-email", "full_name": "X", "organization_name": "Acme"},
            {"email": "boss@example.com", "full_name": "Boss", "organization_name": "Acme", "role": "admin"},
            {"email": "legacy@example.com", "full_name": "Legacy", "organization_name": "Acme", "is_admin": "TRUE"},
            {"email": "TAKEN@example.com", "full_name": "Dup", "organization_name": "Acme"},
            {"email": "fine@example.com", "full_name": "Fine", "organization_name": "Acme", "status": "APPROVED"},
        ], admin_id=None)

        assert [r["success"] for r in result["results"]] == [False, False, False, False, True]
        assert result["results"][1]["error"] == "Admin accounts must be created from the admin management page"
        assert result["results"][2]["error"] == "Admin accounts must be created from the admin management page"
        assert result["results"][3]["error"] == "User with this email already exists"
        assert (result["created"], result["failed"]) == (1, 4)

        fine = db_session.execute(select(User).where(User.email == "fine@example.com")).scalar_one()
        assert fine.is_approved is True
        assert fine.approval_status == "approved"
