from __future__ import annotations

import json
import os
import unittest
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from marketplace import create_app
from marketplace.extensions import db
from marketplace.models import Category, Listing
from marketplace.utils.cache_layer import _reset_cache_state_for_tests


class ListingsApiTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._prev_db_uri = os.getenv("SQLALCHEMY_DATABASE_URI")
        cls._prev_db_url = os.getenv("DATABASE_URL")
        db_uri = "sqlite:///:memory:"
        os.environ["SQLALCHEMY_DATABASE_URI"] = db_uri
        os.environ["DATABASE_URL"] = db_uri
        cls.app = create_app()
        cls.app.config.update(TESTING=True)
        cls.client = cls.app.test_client()

    @classmethod
    def tearDownClass(cls):
        if cls._prev_db_uri is None:
            os.environ.pop("SQLALCHEMY_DATABASE_URI", None)
        else:
            os.environ["SQLALCHEMY_DATABASE_URI"] = cls._prev_db_uri
        if cls._prev_db_url is None:
            os.environ.pop("DATABASE_URL", None)
        else:
            os.environ["DATABASE_URL"] = cls._prev_db_url

    def setUp(self):
        _reset_cache_state_for_tests()
        with self.app.app_context():
            db.drop_all()
            db.create_all()
            vehicles = Category(name="Vehicles")
            db.session.add(vehicles)
            db.session.flush()
            cars = Category(name="Cars", parent_id=vehicles.id)
            db.session.add(cars)
            db.session.flush()
            now = datetime.utcnow()
            db.session.add_all(
                [
                    Listing(title="Hatchback", category_id=cars.id, price=Decimal("4500"), location="Munich", created_at=now),
                    Listing(
                        title="Estate",
                        category_id=cars.id,
                        price=None,
                        location="Hamburg",
                        created_at=now - timedelta(days=3),
                    ),
                ]
            )
            db.session.commit()
        _reset_cache_state_for_tests()

    def test_list_listings_contract(self):
        res = self.client.get("/api/listings?mainCategory=Vehicles&subCategory=Cars")
        self.assertEqual(res.status_code, 200)
        body = res.get_json(force=True)
        self.assertTrue(body["ok"])
        self.assertEqual(body["total_count"], 2)
        self.assertEqual(body["page"], 1)
        self.assertEqual(body["page_size"], 10)
        self.assertFalse(body["degraded"])
        self.assertEqual([item["title"] for item in body["listings"]], ["Hatchback", "Estate"])
        self.assertEqual(body["listings"][1]["price"], "0.00")

    def test_filters_from_query_string(self):
        res = self.client.get("/api/listings?mainCategory=vehicles&location=munich&minPrice=1000&datePosted=24h")
        body = res.get_json(force=True)
        self.assertEqual([item["title"] for item in body["listings"]], ["Hatchback"])

    def test_paging_params(self):
        res = self.client.get("/api/listings?mainCategory=Vehicles&page=2&pageSize=1")
        body = res.get_json(force=True)
        self.assertEqual(body["total_count"], 2)
        self.assertEqual([item["title"] for item in body["listings"]], ["Estate"])

    def test_unparseable_and_oversized_paging_falls_back(self):
        res = self.client.get("/api/listings?mainCategory=Vehicles&page=abc&pageSize=5000&minPrice=lots")
        self.assertEqual(res.status_code, 200)
        body = res.get_json(force=True)
        self.assertEqual(body["page"], 1)
        self.assertEqual(body["page_size"], 100)
        self.assertEqual(body["total_count"], 2)

    def test_missing_main_category_is_400(self):
        res = self.client.get("/api/listings")
        self.assertEqual(res.status_code, 400)
        body = res.get_json(force=True)
        self.assertFalse(body["ok"])
        self.assertEqual(body["error"], "MAIN_CATEGORY_REQUIRED")
        self.assertTrue(str(body.get("trace_id") or "").strip())

    def test_unknown_main_category_is_404(self):
        res = self.client.get("/api/listings?mainCategory=Boats")
        self.assertEqual(res.status_code, 404)
        body = res.get_json(force=True)
        self.assertEqual(body["error"], "CATEGORY_NOT_FOUND")

    def test_unknown_subcategory_is_empty_200(self):
        res = self.client.get("/api/listings?mainCategory=Vehicles&subCategory=Boats")
        self.assertEqual(res.status_code, 200)
        body = res.get_json(force=True)
        self.assertEqual(body["listings"], [])
        self.assertEqual(body["total_count"], 0)
        self.assertFalse(body["degraded"])

    def test_query_failure_reports_degraded(self):
        boom = OperationalError("SELECT 1", {}, Exception("database is gone"))
        with patch("marketplace.services.listing_query._read_snapshot", side_effect=boom):
            res = self.client.get("/api/listings?mainCategory=Vehicles")
        self.assertEqual(res.status_code, 200)
        body = res.get_json(force=True)
        self.assertTrue(body["ok"])
        self.assertTrue(body["degraded"])
        self.assertEqual(body["listings"], [])

    def test_category_lookup_failure_reports_degraded(self):
        boom = OperationalError("SELECT 1", {}, Exception("database is gone"))
        with patch("marketplace.services.category_resolver.load_category_slice", side_effect=boom):
            res = self.client.get("/api/listings?mainCategory=Vehicles")
        self.assertEqual(res.status_code, 200)
        body = res.get_json(force=True)
        self.assertTrue(body["degraded"])
        self.assertEqual(body["total_count"], 0)

    def test_access_log_records_cache_outcome(self):
        url = "/api/listings?mainCategory=Vehicles"
        with self.assertLogs(self.app.logger, level="INFO") as logs:
            self.client.get(url)
            self.client.get(url)
        lines = [json.loads(line.split(":", 2)[2]) for line in logs.output if '"path": "/api/listings"' in line]
        self.assertEqual([line["listings_cache"] for line in lines], ["miss", "hit"])
        self.assertEqual(lines[0]["listings_total"], 2)
        self.assertFalse(lines[0]["listings_degraded"])

    def test_locations(self):
        res = self.client.get("/api/listings/locations")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json(force=True)["items"], ["Hamburg", "Munich"])

    def test_unknown_api_route_returns_json_error_shape(self):
        res = self.client.get("/api/does-not-exist")
        self.assertEqual(res.status_code, 404)
        self.assertTrue(res.is_json)
        body = res.get_json(force=True) or {}
        self.assertFalse(bool(body.get("ok", True)))
        self.assertEqual(int(body.get("status") or 0), 404)
        self.assertTrue(str(body.get("trace_id") or "").strip())

    def test_request_id_is_echoed(self):
        res = self.client.get("/api/health", headers={"X-Request-ID": "rid-test-123"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.headers.get("X-Request-ID"), "rid-test-123")
        body = res.get_json(force=True)
        self.assertEqual(body["db"], "ok")
        self.assertEqual(body["cache"]["backend"], "memory")


if __name__ == "__main__":
    unittest.main()
