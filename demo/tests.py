from django.core import mail
from django.core.cache import cache
from django.test import TestCase, override_settings
from rest_framework.test import APIClient
from demo.models import DemoRequest
from demo.tasks import notify_demo_request


class DemoRequestViewTest(TestCase):

    def setUp(self):
        cache.clear()
        self.client = APIClient()

    def post(self, data, **extra):
        return self.client.post('/api/v1/request-demo', data, format='json', **extra)

    def test_lead_is_stored(self):
        with self.captureOnCommitCallbacks() as callbacks:
            response = self.post({
                'name': '  Grace Hopper ', 'email': ' Grace@Navy.MIL ', 'company': 'US Navy',
                'teamSize': '51-200', 'source': 'linkedin', 'message': '   ',
            }, HTTP_X_FORWARDED_FOR='203.0.113.7')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'success': True, 'data': {'message': 'Demo request received'}})
        self.assertEqual(len(callbacks), 1)

        lead = DemoRequest.objects.get()
        self.assertEqual((lead.name, lead.email), ('Grace Hopper', 'grace@navy.mil'))
        self.assertEqual((lead.company, lead.team_size, lead.source), ('US Navy', '51-200', 'linkedin'))
        self.assertIsNone(lead.message)
        self.assertEqual(lead.ip_address, '203.0.113.7')

    def test_validation(self):
        response = self.post({'email': 'a@b.co'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Name is required')

        response = self.post({'name': 'Ada', 'email': 'not-an-email'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'A valid email is required')
        self.assertFalse(DemoRequest.objects.exists())

    def test_no_authentication_needed_but_rate_limited(self):
        for _ in range(5):
            self.assertEqual(self.post({'name': 'Ada', 'email': 'ada@example.com'}).status_code, 200)
        response = self.post({'name': 'Ada', 'email': 'ada@example.com'})
        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()['code'], 'RATE_LIMITED')


class NotifyDemoRequestTest(TestCase):

    def setUp(self):
        self.lead = DemoRequest.objects.create(name='Ada', email='ada@example.com', company='Analytical')

    def test_sends_once(self):
        self.assertTrue(notify_demo_request(self.lead.pk))
        self.assertFalse(notify_demo_request(self.lead.pk))

        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ['sales@robohire.test'])
        self.assertEqual(message.subject, 'New demo request from Ada')
        self.assertIn('Company: Analytical', message.body)
        self.assertNotIn('Team size', message.body)
        self.lead.refresh_from_db()
        self.assertIsNotNone(self.lead.notified_at)

    @override_settings(CONTACT_EMAIL=None)
    def test_skipped_without_inbox(self):
        self.assertFalse(notify_demo_request(self.lead.pk))
        self.assertEqual(mail.outbox, [])
