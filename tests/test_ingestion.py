import io
from datetime import time, timedelta

import pandas as pd
import pytest
from openpyxl import Workbook

from excel_analytics import ingestion
from excel_analytics.config import settings
from excel_analytics.errors import ParseError, ValidationError
from tests.conftest import API, XLSX_MIME, sales_frame, xlsx_bytes


def test_parse_xlsx_keeps_header_order_and_native_types():
    rows = ingestion.parse_spreadsheet(xlsx_bytes(sales_frame()), "sales.xlsx")

    assert len(rows) == 4
    assert list(rows[0].keys()) == ["Region", "Units", "Revenue", "Cost"]
    assert rows[0] == {"Region": "North", "Units": 120, "Revenue": 2400.5, "Cost": 1500}
    assert type(rows[0]["Units"]) is int


def test_parse_csv_blank_cells_become_none():
    csv = b"name,score,age\nann,,31\nbob,7.5,\n"
    rows = ingestion.parse_spreadsheet(csv, "people.CSV")

    assert rows[0] == {"name": "ann", "score": None, "age": 31.0}
    assert rows[1]["age"] is None


def test_parse_corrupt_workbook_raises_parse_error():
    with pytest.raises(ParseError):
        ingestion.parse_spreadsheet(b"definitely not a zip archive", "broken.xlsx")


def test_numeric_columns_use_first_row_only():
    rows = [
        {"label": "a", "x": 1, "y": None, "z": 2.5, "flag": True},
        {"label": "b", "x": 2, "y": 3, "z": 1.0, "flag": False},
    ]
    assert ingestion.numeric_columns(rows) == ["x", "z"]


def test_infer_picks_first_two_numeric_columns():
    rows = ingestion.dataframe_to_rows(sales_frame())
    config = ingestion.infer_chart_config(rows)

    assert config == {
        "chart_type": "bar",
        "x_key": "Units",
        "y_key": "Revenue",
        "title": "Revenue vs Units",
    }


def test_infer_rejects_fewer_than_two_numeric_columns():
    rows = [{"city": "Oslo", "population": 700000, "country": "NO"}]
    with pytest.raises(ValidationError, match="at least two numeric columns"):
        ingestion.infer_chart_config(rows)


def test_infer_honours_explicit_axes():
    rows = ingestion.dataframe_to_rows(sales_frame())
    config = ingestion.infer_chart_config(rows, x_key="Region", y_key="Cost", chart_type="line")

    assert config["x_key"] == "Region"
    assert config["y_key"] == "Cost"
    assert config["chart_type"] == "line"
    assert config["title"] == "Cost vs Region"


def test_infer_rejects_unknown_explicit_axis():
    rows = ingestion.dataframe_to_rows(sales_frame())
    with pytest.raises(ValidationError, match="Missing"):
        ingestion.infer_chart_config(rows, x_key="Region", y_key="Missing")


@pytest.mark.parametrize("filename, content, message", [
    (None, b"x", "No file uploaded"),
    ("report.pdf", b"x", "Unsupported file type"),
    ("report", b"x", "Unsupported file type"),
    ("empty.xlsx", b"", "empty"),
])
def test_validate_upload_rejections(filename, content, message):
    with pytest.raises(ValidationError, match=message):
        ingestion.validate_upload(filename, content)


def test_validate_upload_enforces_size_limit(monkeypatch):
    monkeypatch.setattr(settings, "MAX_UPLOAD_MB", 1)
    with pytest.raises(ValidationError, match="too large"):
        ingestion.validate_upload("big.csv", b"a" * (1024 * 1024 + 1))
    assert ingestion.validate_upload("ok.XLSX", b"a" * 1024) == ".xlsx"


def test_store_upload_writes_under_safe_name(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path))
    file_id = ingestion.store_upload(b"payload", "../../etc/Quarterly Report.xlsx")

    assert file_id.endswith(".xlsx")
    assert "/" not in file_id and " " not in file_id
    assert (tmp_path / file_id).read_bytes() == b"payload"


@pytest.mark.parametrize("value, expected", [
    (time(9, 30), "09:30:00"),
    (timedelta(hours=2), "2:00:00"),
    (pd.Timedelta(minutes=90), "0 days 01:30:00"),
    (pd.Period("2024-03", freq="M"), "2024-03"),
])
def test_to_cell_stringifies_time_and_duration_values(value, expected):
    assert ingestion._to_cell(value) == expected


def test_infer_lone_x_key_pairs_with_first_other_numeric_column():
    rows = ingestion.dataframe_to_rows(sales_frame())
    config = ingestion.infer_chart_config(rows, x_key="Units")

    assert (config["x_key"], config["y_key"]) == ("Units", "Revenue")


def test_infer_lone_y_key_pairs_with_first_other_numeric_column():
    rows = ingestion.dataframe_to_rows(sales_frame())
    config = ingestion.infer_chart_config(rows, y_key="Cost")

    assert (config["x_key"], config["y_key"]) == ("Units", "Cost")
    assert config["title"] == "Cost vs Units"


def test_infer_lone_axis_must_exist_and_have_a_partner():
    rows = [{"city": "Oslo", "population": 700000}]
    with pytest.raises(ValidationError, match="Nope"):
        ingestion.infer_chart_config(rows, x_key="Nope")
    with pytest.raises(ValidationError, match="pair with 'population'"):
        ingestion.infer_chart_config(rows, y_key="population")


def _shift_workbook() -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.append(["Shift", "Duration", "Units", "Revenue"])
    ws.append([time(9, 30), timedelta(hours=2), 10, 20.5])
    ws.append([time(17, 0), timedelta(hours=8), 12, 31.0])
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def test_upload_with_time_and_duration_cells_is_stored(client, user_headers):
    resp = client.post(
        f"{API}/upload",
        files={"file": ("shifts.xlsx", _shift_workbook(), XLSX_MIME)},
        headers=user_headers,
    )

    assert resp.status_code == 200, resp.text
    first = resp.json()["data"][0]
    assert first["Shift"].startswith("09:30")
    assert isinstance(first["Duration"], str)
    assert (first["Units"], first["Revenue"]) == (10, 20.5)

    history = client.get(f"{API}/charts/history", headers=user_headers).json()["history"]
    assert history[0]["data"][0]["Shift"] == first["Shift"]
