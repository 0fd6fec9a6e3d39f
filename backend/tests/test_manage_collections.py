"""Tests for the collection export/import command."""

import json
from unittest.mock import patch

import pytest

from promoplan.core import database as db_module
from promoplan.models.coupon import Coupon
from scripts.manage_collections import build_parser, main, run
from tests.conftest import make_coupon


@pytest.fixture
def script_sessions():
    with patch("scripts.manage_collections.SessionLocal", db_module.SessionLocal):
        yield


def test_parser_defaults_to_data_path():
    args = build_parser().parse_args(["export"])
    assert args.command == "export"
    assert args.path


def test_parser_rejects_unknown_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["drop"])


def test_export_then_import(tmp_path, script_sessions):
    db = db_module.SessionLocal()
    try:
        make_coupon(db, code="SAVE20")
    finally:
        db.close()

    counts = run("export", str(tmp_path))
    assert counts == {"coupons": 1, "coupon-usage": 0, "subscriptions": 0}
    assert json.loads((tmp_path / "coupons.json").read_text())[0]["code"] == "SAVE20"

    db = db_module.SessionLocal()
    try:
        db.query(Coupon).delete()
        db.commit()
    finally:
        db.close()

    assert run("import", str(tmp_path))["coupons"] == 1
    db = db_module.SessionLocal()
    try:
        assert db.query(Coupon).one().code == "SAVE20"
    finally:
        db.close()


def test_main_prints_counts(tmp_path, script_sessions, capsys):
    main(["export", "--path", str(tmp_path)])
    assert json.loads(capsys.readouterr().out) == {
        "coupons": 0,
        "coupon-usage": 0,
        "subscriptions": 0,
    }
