"""
Unit tests for BackendClient.

HTTP traffic goes through httpx.MockTransport, either against the fake
recognition service or against single-purpose handlers.
"""

import base64
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import httpx

from inscription_reader.core.errors import (
    DataError,
    ErrorCodes,
    NetworkError,
    ServiceError,
    ServiceUnavailable,
    SessionExpired,
    ValidationError,
)
from inscription_reader.models import ProcessingParameters
from inscription_reader.services.backend_client import BackendClient, ContinuousTranslation

from fake_backend import FakeRecognitionService, lines_for, make_png, write_photo


class BackendClientTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp())
        self.photo = write_photo(self.tmp, 'stone_a.png')
        self.service = FakeRecognitionService()
        self.client = BackendClient("http://backend.test", timeout=5, transport=self.service.transport())

    def tearDown(self):
        self.client.close()
        shutil.rmtree(self.tmp, ignore_errors=True)

    def client_for(self, handler):
        client = BackendClient("http://backend.test", timeout=5, transport=httpx.MockTransport(handler))
        self.addCleanup(client.close)
        return client


class TestSessionLifecycle(BackendClientTestCase):

    def test_start_session_returns_id(self):
        session_id = self.client.start_session()
        self.assertEqual(session_id, "sess-1")
        self.assertEqual(self.service.paths(), ['/start-continuous/'])

    def test_start_session_missing_id(self):
        client = self.client_for(lambda request: httpx.Response(200, json={}))
        with self.assertRaises(DataError):
            client.start_session()

    def test_complete_session_returns_document_and_finalizes(self):
        session_id = self.client.start_session()
        self.client.translate_in_session(session_id, self.photo, ProcessingParameters())

        document = self.client.complete_session(session_id)

        self.assertEqual(document.decode('utf-8'), "stone_a line 1\nstone_a line 2\n")
        self.assertTrue(self.client.is_finalized(session_id))

    def test_finalized_session_rejected_without_network_call(self):
        session_id = self.client.start_session()
        self.client.complete_session(session_id)
        calls_before = len(self.service.calls)

        with self.assertRaises(SessionExpired) as cm:
            self.client.translate_in_session(session_id, self.photo, ProcessingParameters())
        with self.assertRaises(SessionExpired):
            self.client.complete_session(session_id)

        self.assertEqual(cm.exception.error_code, ErrorCodes.SESSION_FINALIZED)
        self.assertEqual(len(self.service.calls), calls_before)

    def test_unknown_session_is_expired(self):
        with self.assertRaises(SessionExpired) as cm:
            self.client.translate_in_session("nope", self.photo, ProcessingParameters())
        self.assertEqual(cm.exception.context['session_id'], "nope")
        self.assertTrue(self.client.is_finalized("nope"))

    @patch('inscription_reader.services.backend_client.MAX_FINALIZED_SESSIONS', 2)
    def test_finalized_history_is_bounded(self):
        ids = [self.client.start_session() for _ in range(3)]
        for session_id in ids:
            self.client.complete_session(session_id)

        self.assertFalse(self.client.is_finalized(ids[0]))
        self.assertTrue(self.client.is_finalized(ids[1]))
        self.assertTrue(self.client.is_finalized(ids[2]))


class TestPreprocess(BackendClientTestCase):

    def test_sends_parameters_and_decodes_png(self):
        result = self.client.preprocess(self.photo, ProcessingParameters(30, 0.9))

        path, fields = self.service.calls[0]
        self.assertEqual(path, '/preprocess/')
        self.assertEqual(fields['scale'], '30')
        self.assertEqual(fields['noise_divisor'], '0.9')
        self.assertEqual(fields['file'], 'stone_a.png')
        self.assertTrue(result.png_bytes.startswith(b'\x89PNG'))
        self.assertIsNone(result.session_id)

    def test_passes_and_returns_session_id(self):
        service = FakeRecognitionService(allocate_on_preprocess=True)
        client = BackendClient("http://backend.test", transport=service.transport())
        self.addCleanup(client.close)

        first = client.preprocess(self.photo, ProcessingParameters())
        second = client.preprocess(self.photo, ProcessingParameters(), session_id=first.session_id)

        self.assertEqual(first.session_id, "sess-1")
        self.assertEqual(second.session_id, "sess-1")
        self.assertNotIn('session_id', service.calls[0][1])
        self.assertEqual(service.calls[1][1]['session_id'], "sess-1")

    def test_accepts_data_url(self):
        encoded = base64.b64encode(make_png(4, 2)).decode()
        client = self.client_for(lambda request: httpx.Response(
            200, json={'preprocessed_image': f"data:image/png;base64,{encoded}"}))

        result = client.preprocess(self.photo, ProcessingParameters())
        self.assertEqual(result.png_bytes, make_png(4, 2))

    def test_invalid_base64(self):
        client = self.client_for(lambda request: httpx.Response(200, json={'preprocessed_image': "***"}))
        with self.assertRaises(DataError):
            client.preprocess(self.photo, ProcessingParameters())

    def test_out_of_range_parameters_never_sent(self):
        with self.assertRaises(ValidationError):
            self.client.preprocess(self.photo, ProcessingParameters(5, 1.0))
        self.assertEqual(self.service.calls, [])

    def test_missing_file_never_sent(self):
        with self.assertRaises(ValidationError):
            self.client.preprocess(self.tmp / 'missing.png', ProcessingParameters())
        self.assertEqual(self.service.calls, [])


class TestTranslate(BackendClientTestCase):

    def test_translate_in_session(self):
        session_id = self.client.start_session()
        result = self.client.translate_in_session(session_id, self.photo, ProcessingParameters(40, 2.0))

        self.assertEqual(result, ContinuousTranslation(
            current=lines_for('stone_a.png'),
            merged=lines_for('stone_a.png'),
            image_count=1,
        ))
        path, fields = self.service.calls[-1]
        self.assertEqual(path, f'/continuous-translate/{session_id}')
        self.assertEqual(fields['scale'], '40')

    def test_translate_in_session_bad_payload(self):
        client = self.client_for(lambda request: httpx.Response(200, json={
            'current_translation': "not a list", 'merged_translation': [], 'num_images': 1}))
        with self.assertRaises(DataError):
            client.translate_in_session("s1", self.photo, ProcessingParameters())

    def test_translate_in_session_bad_count(self):
        client = self.client_for(lambda request: httpx.Response(200, json={
            'current_translation': [], 'merged_translation': [], 'num_images': "one"}))
        with self.assertRaises(DataError):
            client.translate_in_session("s1", self.photo, ProcessingParameters())

    def test_predict_returns_document(self):
        document = self.client.predict(self.photo)
        self.assertEqual(document.decode(), "stone_a line 1\nstone_a line 2\n")
        self.assertEqual(self.service.paths(), ['/predict/'])

    def test_session_id_is_escaped(self):
        seen = []

        def handler(request):
            seen.append(request.url.raw_path)
            return httpx.Response(200, content=b"")

        client = self.client_for(handler)
        client.translate("a/b c")
        self.assertEqual(seen, [b'/translate/a%2Fb%20c'])


class TestErrorMapping(BackendClientTestCase):

    def test_timeout_is_network_error(self):
        self.service.raise_next('/start-continuous/', httpx.ReadTimeout, "timed out")
        with self.assertRaises(NetworkError) as cm:
            self.client.start_session()
        self.assertEqual(cm.exception.error_code, ErrorCodes.CONNECTION_TIMEOUT)
        self.assertNotIsInstance(cm.exception, ServiceUnavailable)

    def test_connect_error_is_service_unavailable(self):
        self.service.raise_next('/preprocess/')
        with self.assertRaises(ServiceUnavailable):
            self.client.preprocess(self.photo, ProcessingParameters())

    def test_other_transport_error(self):
        self.service.raise_next('/predict/', httpx.RemoteProtocolError, "peer closed")
        with self.assertRaises(NetworkError) as cm:
            self.client.predict(self.photo)
        self.assertEqual(cm.exception.error_code, ErrorCodes.TRANSPORT_ERROR)

    def test_server_error_is_service_error(self):
        self.service.fail_next('/preprocess/', 500, "model crashed")
        with self.assertRaises(ServiceError) as cm:
            self.client.preprocess(self.photo, ProcessingParameters())
        self.assertIn("model crashed", cm.exception.message)
        self.assertEqual(cm.exception.context['status_code'], 500)

    def test_unavailable_status(self):
        self.service.fail_next('/predict/', 503)
        with self.assertRaises(ServiceUnavailable):
            self.client.predict(self.photo)

    def test_rejected_request_is_validation_error(self):
        self.service.fail_next('/preprocess/', 422, "scale must be an integer")
        with self.assertRaises(ValidationError) as cm:
            self.client.preprocess(self.photo, ProcessingParameters())
        self.assertEqual(cm.exception.error_code, ErrorCodes.REJECTED_BY_SERVICE)

    def test_404_without_session_is_service_error(self):
        self.service.fail_next('/predict/', 404)
        with self.assertRaises(ServiceError):
            self.client.predict(self.photo)

    def test_410_with_session_is_expired(self):
        session_id = self.client.start_session()
        self.service.fail_next('/complete-session/', 410, "gone")
        with self.assertRaises(SessionExpired):
            self.client.complete_session(session_id)

    def test_non_json_error_body(self):
        client = self.client_for(lambda request: httpx.Response(500, content=b"Internal Server Error"))
        with self.assertRaises(ServiceError) as cm:
            client.start_session()
        self.assertIn("Internal Server Error", cm.exception.message)


if __name__ == '__main__':
    unittest.main()
