import os
import sys
import unittest
from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

# Keep API tests deterministic and fast by default.
os.environ.setdefault("ANALYTICS_ENABLED", "0")

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from fastapi.testclient import TestClient
from starlette.requests import Request

from app.core import security
from app.core.config import settings
from app.core.quota_ledger import QuotaLedger
from app.core.quota_store import InMemoryQuotaStore
from app.core.rate_limit import client_route_key
from app.main import app
from app.services.analysis_service import AnalysisOrchestrator


class PublicApiTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.client = TestClient(app)
        cls.cv_text = (
            "Ingeniera de software con 8 years experience with react, node and docker. "
            "Lideró migraciones a la nube y mentoría de equipos de desarrollo."
        )

    def setUp(self):
        app.state.quota_ledger = QuotaLedger(InMemoryQuotaStore())
        app.state.analysis_orchestrator = AnalysisOrchestrator(None)

    def _post(self, **body):
        return self.client.post("/v1/public/analyze/cv-text", json=body)

    def test_health(self):
        for path in ("/health", "/v1/health"):
            response = self.client.get(path)
            self.assertEqual(response.status_code, 200)
            body = response.json()
            self.assertTrue(body["ok"])
            self.assertIn("ts", body)

    def test_analysis_contract_shape(self):
        response = self._post(cv_text=self.cv_text, email="ana@example.com")
        self.assertEqual(response.status_code, 200)
        body = response.json()

        self.assertTrue(body["ok"])
        self.assertEqual(body["remaining"], 2)
        self.assertEqual(len(body["cv_hash"]), 12)
        self.assertIn("url", body["cta"])
        analysis = body["analysis"]
        self.assertEqual(
            set(analysis),
            {"industry", "role_seniority", "top_roles", "skills", "score", "red_flags", "summary", "next_steps"},
        )
        self.assertEqual(analysis["industry"], "IT")
        self.assertEqual(analysis["role_seniority"], "Senior")
        self.assertTrue(1 <= analysis["score"] <= 10)

    def test_fourth_submission_is_denied(self):
        statuses = []
        remaining = []
        for _ in range(4):
            response = self._post(cv_text=self.cv_text, email="ana@example.com")
            statuses.append(response.status_code)
            remaining.append(response.json()["remaining"])

        self.assertEqual(statuses, [200, 200, 200, 429])
        self.assertEqual(remaining, [2, 1, 0, 0])

        denied = self._post(cv_text=self.cv_text, email="ana@example.com").json()
        self.assertFalse(denied["ok"])
        self.assertEqual(denied["code"], "PUBLIC_LIMIT_REACHED")
        self.assertEqual(denied["remaining"], 0)
        self.assertIn("cta", denied)

    def test_reformatted_text_counts_as_same_cv(self):
        reformatted = self.cv_text.replace(" ", "   ") + "\r\n\r\n\r\n"
        first = self._post(cv_text=self.cv_text).json()
        second = self._post(cv_text=reformatted).json()
        self.assertEqual(first["cv_hash"], second["cv_hash"])
        self.assertEqual(second["remaining"], 1)

    def test_identities_are_isolated_and_invalid_email_is_anonymous(self):
        self.assertEqual(self._post(cv_text=self.cv_text, email="ana@example.com").json()["remaining"], 2)
        self.assertEqual(self._post(cv_text=self.cv_text, email="luis@example.com").json()["remaining"], 2)
        self.assertEqual(self._post(cv_text=self.cv_text).json()["remaining"], 2)
        self.assertEqual(self._post(cv_text=self.cv_text, email="nope").json()["remaining"], 1)

    def test_non_string_email_counts_as_anonymous(self):
        self.assertEqual(self._post(cv_text=self.cv_text).json()["remaining"], 2)
        for email in (12345, ["ana@example.com"]):
            with self.subTest(email=email):
                response = self._post(cv_text=self.cv_text, email=email)
                self.assertEqual(response.status_code, 200)
        self.assertEqual(self._post(cv_text=self.cv_text).json()["code"], "PUBLIC_LIMIT_REACHED")

    def test_short_or_missing_text_is_rejected(self):
        for body in ({}, {"cv_text": "demasiado corto"}, {"cv_text": " " * 80}):
            with self.subTest(body=body):
                response = self.client.post("/v1/public/analyze/cv-text", json=body)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json()["code"], "CV_TEXT_REQUIRED")

    def test_analytics_requires_api_key_when_configured(self):
        with patch.object(security, "settings", replace(settings, api_key="admin-secret-key")):
            denied = self.client.get("/v1/analytics/analysis-runs/summary")
            allowed = self.client.get(
                "/v1/analytics/analysis-runs/summary",
                headers={"X-API-Key": "admin-secret-key"},
            )
        self.assertEqual(denied.status_code, 401)
        self.assertEqual(allowed.status_code, 200)
        self.assertIn("enabled", allowed.json())

    def test_rate_limit_key_is_per_client_and_path(self):
        request = Request(
            {
                "type": "http",
                "method": "POST",
                "scheme": "http",
                "server": ("testserver", 80),
                "path": "/v1/public/analyze/cv-text",
                "query_string": b"",
                "headers": [],
                "client": ("10.0.0.1", 51000),
            }
        )
        self.assertEqual(client_route_key(request), "10.0.0.1:/v1/public/analyze/cv-text")


if __name__ == "__main__":
    unittest.main()
