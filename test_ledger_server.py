import os
import tempfile
import unittest

import requests

from ledger_server import create_app
from test_sync_gateway import FakeSession, make_response


class LedgerServerTest(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.tmp.name, "ledger.db")
        self.session = FakeSession()
        self.app = create_app(db_path=self.db_path, session=self.session)
        self.app.testing = True
        self.client = self.app.test_client()
        self.ledger = self.app.extensions["ledger"]
        self.ledger["modes"].set_endpoint(None)

    def tearDown(self):
        self.ledger["gateway"].close()
        self.tmp.cleanup()

    def test_save_sale_local_only(self):
        resp = self.client.post("/api/sales", json={
            "date": "2024-03-01", "service": "Scan", "amount": 20, "customerName": "N/A",
        })
        self.assertEqual(resp.status_code, 200)
        body = resp.get_json()
        self.assertTrue(body["success"])
        self.assertTrue(body["local"])
        self.assertEqual(len(self.ledger["store"].sales()), 1)
        self.assertEqual(resp.headers["Cache-Control"].split(",")[0], "no-store")

    def test_rejects_non_object_body(self):
        resp = self.client.post("/api/expenses", json=[1, 2])
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post("/api/cash", data="nope", content_type="text/plain")
        self.assertEqual(resp.status_code, 400)

    def test_cash_latest_reports_chronological_and_cursor(self):
        self.client.post("/api/cash", json={"date": "2024-03-05", "amount": 900})
        self.client.post("/api/cash", json={"date": "2024-03-01", "amount": 500})
        self.client.post("/api/cash", json={"date": "2024-03-01", "amount": 750})
        body = self.client.get("/api/cash/latest").get_json()
        self.assertEqual(body["latest"]["date"], "2024-03-05")
        self.assertEqual(body["current_amount"], 750)
        self.assertEqual(body["last_date"], "2024-03-01")
        self.assertEqual(len(self.ledger["store"].cash_entries()), 2)

    def test_mode_switching(self):
        self.assertEqual(self.client.get("/api/mode").get_json()["mode"], "local-only")
        resp = self.client.post("/api/mode", json={"endpoint": "https://ledger.example.com/exec"})
        self.assertEqual(resp.get_json(), {"mode": "remote-backed", "endpoint": "https://ledger.example.com/exec"})
        resp = self.client.post("/api/mode", json={"endpoint": "not-a-url"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["mode"], "remote-backed")
        resp = self.client.post("/api/mode", json={"endpoint": None})
        self.assertEqual(resp.get_json()["mode"], "local-only")

    def test_non_string_endpoint_is_bad_request(self):
        self.client.post("/api/mode", json={"endpoint": "https://ledger.example.com/exec"})
        resp = self.client.post("/api/mode", json={"endpoint": 5})
        self.assertEqual(resp.status_code, 400)
        body = resp.get_json()
        self.assertEqual(body["status"], "error")
        self.assertEqual(body["mode"], "remote-backed")

    def test_remote_failure_still_saved(self):
        self.ledger["modes"].set_endpoint("https://ledger.example.com/exec")
        self.session.post_results.append(requests.ConnectionError("unreachable"))
        resp = self.client.post("/api/expenses", json={"date": "2024-03-01", "amount": 3, "purpose": "Ink"})
        body = resp.get_json()
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(body["success"])
        self.assertIn("unreachable", body["remoteError"])
        self.assertEqual(len(self.ledger["store"].expenses()), 1)

    def test_connection_test_route(self):
        self.ledger["modes"].set_endpoint("https://ledger.example.com/exec")
        self.session.get_results.append(make_response(200, {"ok": True}))
        body = self.client.post("/api/connection/test").get_json()
        self.assertTrue(body["success"])

    def test_summary_route(self):
        self.client.post("/api/sales", json={"date": "2024-03-01", "service": "Scan", "amount": 20})
        self.client.post("/api/expenses", json={"date": "2024-03-01", "amount": 5, "purpose": "Pens"})
        body = self.client.get("/api/summary?date=2024-03-01").get_json()
        self.assertEqual(body["sales_total"], 20)
        self.assertEqual(body["net"], 15)

    def test_storage_failure_returns_500(self):
        self.ledger["store"].db_path = self.tmp.name
        resp = self.client.post("/api/sales", json={"date": "2024-03-01", "service": "Scan", "amount": 1})
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.get_json()["status"], "error")


if __name__ == "__main__":
    unittest.main()
