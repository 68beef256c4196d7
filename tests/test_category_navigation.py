from __future__ import annotations

import json
import os
import tempfile
import unittest

from marketplace import create_app
from marketplace.extensions import db
from marketplace.models import Category
from marketplace.services.category_navigation import (
    IncompleteCategoryPath,
    category_menu,
    category_path,
    category_tree,
    category_url,
    decode_category_slug,
    slugify_category,
)
from marketplace.services.category_resolver import CategoryNotFound
from marketplace.utils.cache_layer import _reset_cache_state_for_tests


CATEGORY_TREE = [
    {
        "name": "Home & Garden",
        "children": [
            {
                "name": "Furniture",
                "description": "Sofas, Tables,  Beds",
                "children": [{"name": "Sofas"}],
            },
            {"name": "Tools"},
        ],
    },
    {"name": "Jobs", "children": [{"name": "IT"}]},
]


class SlugHelpersTestCase(unittest.TestCase):
    def test_slugify(self):
        self.assertEqual(slugify_category("Home & Garden"), "home-and-garden")
        self.assertEqual(slugify_category("  TV / Audio  "), "tv-audio")

    def test_decode(self):
        self.assertEqual(decode_category_slug("home-and-garden"), "Home & Garden")
        self.assertEqual(decode_category_slug("mobile-phones"), "Mobile Phones")

    def test_category_url(self):
        self.assertEqual(category_url("Electronics"), "/categories/electronics")
        self.assertEqual(
            category_url("Electronics", "Mobile Phones", "Android"),
            "/categories/electronics/mobile-phones/android",
        )


class CategoryNavigationTestCase(unittest.TestCase):
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
        cls.runner = cls.app.test_cli_runner()

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
        fd, self.tree_path = tempfile.mkstemp(suffix=".json")
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(CATEGORY_TREE, fh)
        result = self.runner.invoke(args=["seed-categories", "--file", self.tree_path])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("created=6", result.output)
        with self.app.app_context():
            self.ids = {row.name: int(row.id) for row in Category.query.all()}

    def tearDown(self):
        os.remove(self.tree_path)

    def test_seed_is_idempotent(self):
        result = self.runner.invoke(args=["seed-categories", "--file", self.tree_path])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("created=0", result.output)
        with self.app.app_context():
            self.assertEqual(Category.query.count(), 6)

    def test_seed_rejects_non_list_file(self):
        with open(self.tree_path, "w", encoding="utf-8") as fh:
            json.dump({"name": "Jobs"}, fh)
        result = self.runner.invoke(args=["seed-categories", "--file", self.tree_path])
        self.assertNotEqual(result.exit_code, 0)

    def test_invalidate_cache_command(self):
        result = self.runner.invoke(args=["invalidate-listings-cache"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("listings_cache_invalidated", result.output)

    def test_category_tree_has_three_levels(self):
        with self.app.app_context():
            tree = category_tree()
        self.assertEqual([node["name"] for node in tree], ["Home & Garden", "Jobs"])
        furniture = tree[0]["children"][0]
        self.assertEqual(furniture["name"], "Furniture")
        self.assertEqual([leaf["name"] for leaf in furniture["children"]], ["Sofas"])

    def test_menu_items_come_from_description(self):
        with self.app.app_context():
            menu = category_menu("home & garden")
            missing = category_menu("Pets")
        self.assertEqual(missing, [])
        self.assertEqual([section["title"] for section in menu], ["Furniture", "Tools"])
        furniture = menu[0]
        self.assertEqual(furniture["href"], "/categories/home-and-garden/furniture")
        self.assertEqual([item["name"] for item in furniture["items"]], ["Sofas", "Tables", "Beds"])
        self.assertEqual(menu[1]["items"], [])

    def test_category_path(self):
        with self.app.app_context():
            self.assertEqual(category_path(self.ids["Sofas"]), ["home-and-garden", "furniture", "sofas"])
            with self.assertRaises(IncompleteCategoryPath):
                category_path(self.ids["IT"])
            with self.assertRaises(CategoryNotFound):
                category_path(9999)

    def test_categories_endpoint_defaults_to_main_categories(self):
        res = self.client.get("/api/categories")
        self.assertEqual(res.status_code, 200)
        self.assertIn("max-age=300", res.headers.get("Cache-Control", ""))
        body = res.get_json(force=True)
        self.assertEqual([item["name"] for item in body["items"]], ["Home & Garden", "Jobs"])

    def test_categories_endpoint_by_parent(self):
        res = self.client.get(f"/api/categories?parentId={self.ids['Home & Garden']}")
        body = res.get_json(force=True)
        self.assertEqual([item["name"] for item in body["items"]], ["Furniture", "Tools"])

        bad = self.client.get("/api/categories?parentId=abc")
        self.assertEqual(bad.status_code, 400)
        self.assertEqual(bad.get_json(force=True)["error"], "INVALID_PARENT_ID")

    def test_categories_endpoint_full_tree(self):
        res = self.client.get("/api/categories?type=all")
        body = res.get_json(force=True)
        self.assertEqual(body["items"][1]["children"][0]["name"], "IT")

    def test_menu_endpoint(self):
        res = self.client.get("/api/categories/menu?mainCategory=Home%20%26%20Garden")
        self.assertEqual(res.status_code, 200)
        body = res.get_json(force=True)
        self.assertEqual(body["items"][0]["title"], "Furniture")

    def test_path_endpoint(self):
        res = self.client.get(f"/api/categories/{self.ids['Sofas']}/path")
        self.assertEqual(res.status_code, 200)
        body = res.get_json(force=True)
        self.assertEqual(body["path"], ["home-and-garden", "furniture", "sofas"])
        self.assertEqual(body["url"], "/home-and-garden/furniture/sofas")

        self.assertEqual(self.client.get("/api/categories/9999/path").status_code, 404)
        self.assertEqual(self.client.get(f"/api/categories/{self.ids['Tools']}/path").status_code, 422)


if __name__ == "__main__":
    unittest.main()
