import unittest

from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from querykit.api.deps import compiled_query
from querykit.services.relation_paths import FieldPathError
from querykit.schemas.query import QueryConfig
from querykit.services.query_compiler import CompiledQueries

DOCTOR_QUERY = QueryConfig(
    searchable_fields=["name", "user.email"],
    filterable_fields=["experience", "specialty.title", "gender"],
)

STRICT_QUERY = QueryConfig(deep_path_policy="reject")


def _build_app() -> FastAPI:
    app = FastAPI()

    @app.get("/doctors")
    def list_doctors(
        compiled: CompiledQueries = Depends(
            compiled_query(DOCTOR_QUERY, include={"user": True}, where={"isDeleted": False})
        ),
    ):
        return {
            "query": compiled.query.to_find_many_args(),
            "count": compiled.count.to_count_args(),
            "meta": compiled.meta(11).model_dump(),
        }

    @app.get("/strict")
    def strict(compiled: CompiledQueries = Depends(compiled_query(STRICT_QUERY))):
        return compiled.query.to_find_many_args()

    return app


class CompiledQueryDependencyTests(unittest.TestCase):
    def setUp(self):
        self.client = TestClient(_build_app())

    def tearDown(self):
        self.client.close()

    def test_query_string_compiles(self):
        response = self.client.get(
            "/doctors",
            params=[
                ("searchTerm", "john"),
                ("experience[gte]", "5"),
                ("gender", "MALE"),
                ("gender", "FEMALE"),
                ("password", "x"),
                ("page", "2"),
                ("limit", "5"),
                ("sortBy", "user.name"),
                ("sortOrder", "asc"),
            ],
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        where = {
            "OR": [
                {"name": {"contains": "john", "mode": "insensitive"}},
                {"user": {"email": {"contains": "john", "mode": "insensitive"}}},
            ],
            "experience": {"gte": 5},
            "gender": {"in": ["MALE", "FEMALE"]},
            "isDeleted": False,
        }
        self.assertEqual(
            body["query"],
            {
                "where": where,
                "orderBy": {"user": {"name": "asc"}},
                "skip": 5,
                "take": 5,
                "include": {"user": True},
            },
        )
        self.assertEqual(body["count"], {"where": where})
        self.assertEqual(body["meta"], {"page": 2, "limit": 5, "total": 11, "total_pages": 3})

    def test_fields_drop_include(self):
        response = self.client.get("/doctors", params={"fields": "id,name"})
        self.assertEqual(response.status_code, 200)
        query = response.json()["query"]
        self.assertEqual(query["select"], {"id": True, "name": True})
        self.assertNotIn("include", query)

    def test_rejected_path_returns_400(self):
        response = self.client.get("/strict", params={"sortBy": "a.b.c.d"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("a.b.c.d", response.json()["detail"])

    def test_valid_path_passes_strict_policy(self):
        response = self.client.get("/strict", params={"patient.user.email": "a@b.c"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["where"], {"patient": {"user": {"email": "a@b.c"}}})


class CompiledQueryWiringTests(unittest.TestCase):
    def test_bad_configured_path_fails_at_wiring_time(self):
        for config in (
            QueryConfig(searchable_fields=["a.b.c.d"], deep_path_policy="reject"),
            QueryConfig(filterable_fields=["a..b"], deep_path_policy="reject"),
            QueryConfig(sortable_fields=["a.b.c.d"], deep_path_policy="reject"),
        ):
            with self.subTest(config=config):
                with self.assertRaises(FieldPathError):
                    compiled_query(config)

    def test_bad_configured_path_is_tolerated_when_ignored(self):
        dependency = compiled_query(QueryConfig(searchable_fields=["name", "a.b.c.d"], deep_path_policy="ignore"))
        self.assertTrue(callable(dependency))


if __name__ == "__main__":
    unittest.main()
