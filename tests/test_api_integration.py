# ========================
# tests/test_api_integration.py
# ========================

import unittest
import requests
import time
import tempfile
import gzip
import os


class TestAPIIntegration(unittest.TestCase):
    """
    Integration tests for the API server endpoints.
    These tests require the API server to be running on localhost:8000
    """

    BASE_URL = "http://localhost:8000"

    @classmethod
    def setUpClass(cls):
        """Check if API server is available before running tests."""
        try:
            response = requests.get(f"{cls.BASE_URL}/health", timeout=5)
            if response.status_code != 200:
                raise ConnectionError("API server not responding correctly")
        except requests.exceptions.RequestException:
            raise unittest.SkipTest("API server not available at localhost:8000. Start with 'python api_server.py'")

    def _upload(self, filename, content, content_type='text/csv'):
        with tempfile.NamedTemporaryFile(mode='wb', suffix=os.path.splitext(filename)[1], delete=False) as f:
            f.write(content)
            temp_file_path = f.name

        try:
            with open(temp_file_path, 'rb') as file:
                files = {'file': (filename, file, content_type)}
                return requests.post(f"{self.BASE_URL}/upload", files=files)
        finally:
            os.unlink(temp_file_path)

    def _wait_for_load_completion(self, load_id, timeout=60):
        """Helper method to wait for a load to finish."""
        start_time = time.time()
        while time.time() - start_time < timeout:
            response = requests.get(f"{self.BASE_URL}/loads/{load_id}")
            if response.status_code == 200:
                data = response.json()
                if data["status"] in ["completed", "cancelled", "failed"]:
                    return data
            time.sleep(0.5)

        raise TimeoutError(f"Load {load_id} did not finish within {timeout} seconds")

    def _large_csv(self, num_rows):
        lines = ["id,name,notes"]
        for i in range(num_rows):
            lines.append(f'{i},Product {i % 7},"note {i}, with comma"')
        return ("\n".join(lines) + "\n").encode()

    def test_health_endpoint(self):
        """Test the health check endpoint."""
        response = requests.get(f"{self.BASE_URL}/health")
        self.assertEqual(response.status_code, 200)

        data = response.json()
        self.assertEqual(data["status"], "healthy")
        self.assertIn("timestamp", data)
        self.assertIn("active_loads", data)

    def test_root_endpoint(self):
        """Test the root API endpoint."""
        response = requests.get(f"{self.BASE_URL}/")
        self.assertEqual(response.status_code, 200)

        data = response.json()
        self.assertIn("message", data)
        self.assertIn("endpoints", data)
        self.assertIn("large_file_threshold_bytes", data)

    def test_upload_small_file(self):
        """A small file is loaded in one go and its rows can be paged."""
        content = b"order_id,product\nORD-001,Test Product\nORD-002,Another Product\n"
        response = self._upload("test_data.csv", content)
        self.assertEqual(response.status_code, 200)

        upload_data = response.json()
        self.assertIn("load_id", upload_data)
        self.assertFalse(upload_data["streaming"])
        self.assertEqual(upload_data["filename"], "test_data.csv")

        load_id = upload_data["load_id"]
        status_data = self._wait_for_load_completion(load_id)
        self.assertEqual(status_data["status"], "completed")
        self.assertEqual(status_data["rows_loaded"], 2)

        rows_response = requests.get(f"{self.BASE_URL}/loads/{load_id}/rows", params={"offset": 1, "limit": 5})
        self.assertEqual(rows_response.status_code, 200)
        rows_data = rows_response.json()
        self.assertEqual(rows_data["headers"], ["order_id", "product"])
        self.assertEqual(rows_data["rows"], [["ORD-002", "Another Product"]])

    def test_upload_gzip_file(self):
        content = gzip.compress(b"a,b\n1,2\n3,4\n")
        response = self._upload("data.csv.gz", content, "application/gzip")
        self.assertEqual(response.status_code, 200)

        status_data = self._wait_for_load_completion(response.json()["load_id"])
        self.assertEqual(status_data["status"], "completed")
        self.assertEqual(status_data["rows_loaded"], 2)

    def test_large_file_streaming(self):
        """A file above the threshold gets a preview and a background load."""
        response = self._upload("large_test_data.csv", self._large_csv(400000))
        self.assertEqual(response.status_code, 200)

        upload_data = response.json()
        self.assertTrue(upload_data["streaming"])
        load_id = upload_data["load_id"]

        preview_response = requests.get(f"{self.BASE_URL}/loads/{load_id}/preview")
        self.assertEqual(preview_response.status_code, 200)
        preview = preview_response.json()
        self.assertEqual(preview["headers"], ["id", "name", "notes"])
        self.assertGreater(len(preview["rows"]), 0)

        status_data = self._wait_for_load_completion(load_id, timeout=120)
        self.assertEqual(status_data["status"], "completed")
        self.assertEqual(status_data["rows_loaded"], 400000)
        self.assertEqual(status_data["total_rows"], 400000)

    def test_cancel_large_load(self):
        """A cancelled load keeps no rows."""
        response = self._upload("cancel_test_data.csv", self._large_csv(400000))
        load_id = response.json()["load_id"]

        cancel_response = requests.post(f"{self.BASE_URL}/loads/{load_id}/cancel")
        if cancel_response.status_code == 400:
            self.skipTest("Load finished before it could be cancelled")
        self.assertEqual(cancel_response.status_code, 200)

        status_data = self._wait_for_load_completion(load_id)
        self.assertEqual(status_data["status"], "cancelled")

        rows_response = requests.get(f"{self.BASE_URL}/loads/{load_id}/rows")
        self.assertEqual(rows_response.status_code, 400)

    def test_malformed_file_fails(self):
        response = self._upload("bad.csv", b'a,b\n"x"y,2\n')
        status_data = self._wait_for_load_completion(response.json()["load_id"])

        self.assertEqual(status_data["status"], "failed")
        self.assertIn("Failed to parse CSV content", status_data["error"])

    def test_loads_listing(self):
        """Test listing and filtering loads."""
        response = requests.get(f"{self.BASE_URL}/loads", params={"status": "completed"})
        self.assertEqual(response.status_code, 200)

        data = response.json()
        self.assertIn("loads", data)
        self.assertIn("total_count", data)
        self.assertIn("filtered_count", data)
        for load in data["loads"]:
            self.assertEqual(load["status"], "completed")

    def test_load_not_found(self):
        for path in ("", "/preview", "/rows"):
            response = requests.get(f"{self.BASE_URL}/loads/non-existent-load-id{path}")
            self.assertEqual(response.status_code, 404)

    def test_invalid_upload(self):
        """Test uploading an unsupported file type."""
        response = self._upload("report.pdf", b"%PDF-1.4", "application/pdf")

        self.assertEqual(response.status_code, 400)
        self.assertIn("are supported", response.json()["detail"])

    def test_load_deletion(self):
        response = self._upload("delete_me.csv", b"a\n1\n")
        load_id = response.json()["load_id"]
        self._wait_for_load_completion(load_id)

        delete_response = requests.delete(f"{self.BASE_URL}/loads/{load_id}")
        self.assertEqual(delete_response.status_code, 200)

        status_response = requests.get(f"{self.BASE_URL}/loads/{load_id}")
        self.assertEqual(status_response.status_code, 404)


if __name__ == '__main__':
    unittest.main()
