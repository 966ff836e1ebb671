from __future__ import annotations

from contextlib import contextmanager

import psycopg2
import pytest
from fastapi.testclient import TestClient

from asset_import.api.app import create_app
from asset_import.models.config_models import AppConfig

"""Input checks answer 400 even when the database cannot be reached."""


@pytest.fixture()
def offline_client():
    opened = []

    @contextmanager
    def unreachable():
        opened.append(True)
        raise psycopg2.OperationalError("could not connect to server: Connection refused")
        yield  # pragma: no cover

    client = TestClient(create_app(AppConfig(), store_factory=unreachable), raise_server_exceptions=False)
    client.opened = opened
    return client


def test_upload_without_file(offline_client):
    res = offline_client.post("/assets/upload-excel", data={"createdBy": "u1"})
    assert res.status_code == 400
    assert res.json()["message"] == "Please upload an Excel file"
    assert offline_client.opened == []


def test_upload_without_creator(offline_client, workbook):
    res = offline_client.post(
        "/assets/upload-excel",
        files={"file": ("assets.xlsx", workbook(["Company"], [["Acme"]]), "application/octet-stream")},
    )
    assert res.status_code == 400
    assert res.json()["message"] == "createdBy (user ID) is required"
    assert offline_client.opened == []


def test_upload_all_rows_empty(offline_client, workbook):
    res = offline_client.post(
        "/assets/upload-excel",
        files={"file": ("assets.xlsx", workbook(["Company", "Extra"], [["", "x"]]), "application/octet-stream")},
        data={"createdBy": "u1"},
    )
    assert res.status_code == 400
    assert offline_client.opened == []


def test_bulk_invalid_request(offline_client):
    res = offline_client.post("/assets/bulk", json={"assets": [], "createdBy": "u1"})
    assert res.status_code == 400
    assert offline_client.opened == []


def test_create_missing_fields(offline_client):
    res = offline_client.post("/assets", json={"serialNumber": "X"})
    assert res.status_code == 400
    assert offline_client.opened == []


def test_valid_request_reports_server_error(offline_client):
    asset = {
        "serialNumber": "S-1", "companyName": "Acme", "branch": "HQ", "department": "Eng",
        "userName": "Jane", "brand": "Dell", "device": "Laptop", "deviceSerialNo": "D1",
        "dateOfPurchase": "2024-01-15",
    }
    res = offline_client.post("/assets/bulk", json={"assets": [asset], "createdBy": "u1"})
    assert res.status_code == 500
    assert res.json() == {"success": False, "data": None, "message": "Server Error"}
    assert offline_client.opened == [True]
