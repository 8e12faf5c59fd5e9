from datetime import timedelta
from django.contrib.auth.models import User
from django.core.cache import cache
from django.test import RequestFactory, TestCase
from django.utils import timezone
from rest_framework.test import APIClient
from auth_core.models import API_KEY_PREFIX, MAX_API_KEYS_PER_USER, APIKey
from auth_core.responses import first_error
from auth_core.throttling import APIKeyRateThrottle, LoginRateThrottle

PASSWORD = 'S3cure-pass-2024'


class APIKeyModelTest(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(username='owner@example.com', email='owner@example.com')

    def test_key_is_generated_with_prefix(self):
        api_key = APIKey.objects.create(user=self.user, name='CI')
        self.assertTrue(api_key.key.startswith(API_KEY_PREFIX))
        self.assertEqual(len(api_key.key), len(API_KEY_PREFIX) + 48)
        self.assertEqual(api_key.prefix, api_key.key[:12])
        self.assertEqual(api_key.scopes, ['read', 'write'])

    def test_masked_key_hides_the_middle(self):
        api_key = APIKey.objects.create(user=self.user, name='CI')
        self.assertEqual(api_key.masked_key, f"{api_key.key[:12]}...{api_key.key[-4:]}")
        self.assertNotIn(api_key.key[12:-4], api_key.masked_key)

    def test_regenerate_replaces_key_and_prefix(self):
        api_key = APIKey.objects.create(user=self.user, name='CI', last_used_at=timezone.now())
        old_key = api_key.key
        new_key = api_key.regenerate_key()
        api_key.refresh_from_db()
        self.assertNotEqual(old_key, new_key)
        self.assertEqual(api_key.key, new_key)
        self.assertEqual(api_key.prefix, new_key[:12])
        self.assertIsNone(api_key.last_used_at)

    def test_expiry(self):
        api_key = APIKey(user=self.user, name='old', expires_at=timezone.now() - timedelta(minutes=1))
        self.assertTrue(api_key.is_expired)
        api_key.expires_at = None
        self.assertFalse(api_key.is_expired)


class APIKeyRateThrottleTest(TestCase):

    def setUp(self):
        cache.clear()
        self.factory = RequestFactory()
        self.user = User.objects.create_user(username='t@example.com', email='t@example.com')
        self.api_key = APIKey.objects.create(
            user=self.user,
            name='Test Key',
            rate_limit=3,  # allow 3 requests
            rate_limit_period=timedelta(seconds=10),  # per 10 seconds
        )
        self.throttle = APIKeyRateThrottle()

    def make_request(self):
        request = self.factory.get('/some-url')
        request.auth = self.api_key
        request.user = self.user
        return request

    def test_allow_request_within_limit(self):
        request = self.make_request()
        for _ in range(3):
            self.assertTrue(self.throttle.allow_request(request, None))
            self.assertIsNone(self.throttle.wait())

    def test_throttle_blocks_after_limit(self):
        request = self.make_request()
        for _ in range(3):
            self.assertTrue(self.throttle.allow_request(request, None))

        self.assertFalse(self.throttle.allow_request(request, None))
        wait_time = self.throttle.wait()
        self.assertIsNotNone(wait_time)
        self.assertGreater(wait_time, 0)

    def test_throttle_resets_after_period(self):
        request = self.make_request()
        for _ in range(3):
            self.assertTrue(self.throttle.allow_request(request, None))

        # Clear cache to simulate expiration
        cache.delete(self.throttle.get_cache_key(request, None))
        self.assertTrue(self.throttle.allow_request(request, None))

    def test_requests_without_api_key_are_not_counted(self):
        request = self.factory.get('/some-url')
        request.auth = None
        self.assertIsNone(self.throttle.get_cache_key(request, None))
        self.assertTrue(self.throttle.allow_request(request, None))

    def test_login_throttle_is_per_ip(self):
        throttle = LoginRateThrottle()
        request = self.factory.post('/api/auth/login', REMOTE_ADDR='10.0.0.1')
        for _ in range(10):
            self.assertTrue(throttle.allow_request(request, None))
        self.assertFalse(throttle.allow_request(request, None))

        other = self.factory.post('/api/auth/login', REMOTE_ADDR='10.0.0.2')
        self.assertTrue(throttle.allow_request(other, None))


class AuthFlowTest(TestCase):

    def setUp(self):
        cache.clear()
        self.client = APIClient()

    def register(self, email='new@example.com', **extra):
        return self.client.post('/api/auth/signup', {'email': email, 'password': PASSWORD, **extra}, format='json')

    def test_signup_creates_user_profile_and_billing(self):
        response = self.register(name='Ada', company='Analytical')
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertIn('access', body['data']['tokens'])

        user = User.objects.get(email='new@example.com')
        self.assertEqual(user.profile.name, 'Ada')
        self.assertEqual(user.profile.company, 'Analytical')
        self.assertEqual(user.billing.subscription_tier, 'free')
        self.assertEqual(body['data']['user']['billing']['subscription_tier'], 'free')

    def test_signup_rejects_duplicate_email(self):
        self.register()
        response = self.register(email='NEW@example.com')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'VALIDATION_ERROR')

    def test_login_with_email_and_me(self):
        self.register()
        response = self.client.post('/api/auth/login', {'email': 'new@example.com', 'password': PASSWORD}, format='json')
        self.assertEqual(response.status_code, 200)
        access = response.json()['data']['tokens']['access']

        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {access}')
        me = self.client.get('/api/auth/me')
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()['data']['email'], 'new@example.com')

    def test_login_with_wrong_password(self):
        self.register()
        response = self.client.post('/api/auth/login', {'email': 'new@example.com', 'password': 'nope'}, format='json')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {'success': False, 'error': 'Invalid credentials', 'code': 'AUTH_REQUIRED'})

    def test_me_requires_authentication(self):
        response = self.client.get('/api/auth/me')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['code'], 'AUTH_REQUIRED')

    def test_update_profile(self):
        self.register()
        user = User.objects.get(email='new@example.com')
        self.client.force_authenticate(user)
        response = self.client.patch('/api/auth/me', {'company': 'RoboCorp'}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['company'], 'RoboCorp')

    def test_logout_blacklists_refresh_token(self):
        tokens = self.register().json()['data']['tokens']
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
        self.assertEqual(self.client.post('/api/auth/logout', {'refresh': tokens['refresh']}, format='json').status_code, 200)

        self.client.credentials()
        response = self.client.post('/api/auth/token/refresh', {'refresh': tokens['refresh']}, format='json')
        self.assertEqual(response.status_code, 401)


class ChangePasswordTest(TestCase):

    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.user = User.objects.create_user(username='pw@example.com', email='pw@example.com', password=PASSWORD)

    def login(self, password=PASSWORD):
        return self.client.post('/api/auth/login', {'email': 'pw@example.com', 'password': password}, format='json')

    def test_change_password_revokes_every_refresh_token(self):
        laptop = self.login().json()['data']['tokens']
        phone = self.login().json()['data']['tokens']

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {laptop['access']}")
        response = self.client.post('/api/auth/change-password', {
            'current_password': PASSWORD, 'new_password': 'An0ther-secret-99',
        }, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data'], {'message': 'Password changed successfully'})

        self.client.credentials()
        for tokens in (laptop, phone):
            response = self.client.post('/api/auth/token/refresh', {'refresh': tokens['refresh']}, format='json')
            self.assertEqual(response.status_code, 401)

        self.assertEqual(self.login().status_code, 401)
        self.assertEqual(self.login('An0ther-secret-99').status_code, 200)

    def test_validation_messages(self):
        self.client.force_authenticate(self.user)
        cases = [
            ({'new_password': 'An0ther-secret-99'}, 'Current password and new password are required'),
            ({'current_password': 'wrong-one', 'new_password': 'An0ther-secret-99'}, 'Current password is incorrect'),
            ({'current_password': PASSWORD, 'new_password': 'short'}, 'New password must be at least 8 characters long'),
            ({'current_password': PASSWORD, 'new_password': 'password123'}, 'new_password: This password is too common.'),
        ]
        for data, error in cases:
            response = self.client.post('/api/auth/change-password', data, format='json')
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json()['error'], error)

        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password(PASSWORD))

    def test_requires_authentication(self):
        response = self.client.post('/api/auth/change-password', {}, format='json')
        self.assertEqual(response.status_code, 401)


class APIKeyEndpointsTest(TestCase):

    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(username='dev@example.com', email='dev@example.com', password=PASSWORD)
        self.client = APIClient()
        self.client.force_authenticate(self.user)

    def test_create_returns_full_key_once(self):
        response = self.client.post('/api/v1/api-keys', {'name': 'Server'}, format='json')
        self.assertEqual(response.status_code, 201)
        data = response.json()['data']
        self.assertTrue(data['key'].startswith('rh_'))
        self.assertIn('message', response.json())

        listing = self.client.get('/api/v1/api-keys').json()['data']
        self.assertEqual(len(listing), 1)
        self.assertNotIn('key', listing[0])
        self.assertEqual(listing[0]['masked_key'], f"{data['key'][:12]}...{data['key'][-4:]}")

    def test_key_limit_per_user(self):
        for i in range(MAX_API_KEYS_PER_USER):
            APIKey.objects.create(user=self.user, name=f'k{i}')
        response = self.client.post('/api/v1/api-keys', {'name': 'one too many'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.json()['success'])

    def test_unknown_scopes_are_dropped(self):
        response = self.client.post('/api/v1/api-keys', {'name': 'ro', 'scopes': ['read', 'admin']}, format='json')
        self.assertEqual(response.json()['data']['scopes'], ['read'])

    def test_past_expiry_rejected(self):
        past = (timezone.now() - timedelta(days=1)).isoformat()
        response = self.client.post('/api/v1/api-keys', {'name': 'x', 'expires_at': past}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_other_users_keys_are_not_found(self):
        other = User.objects.create_user(username='o@example.com', email='o@example.com')
        key = APIKey.objects.create(user=other, name='theirs')
        self.assertEqual(self.client.get(f'/api/v1/api-keys/{key.pk}').status_code, 404)
        self.assertEqual(self.client.delete(f'/api/v1/api-keys/{key.pk}').status_code, 404)

    def test_update_reveal_regenerate_delete(self):
        key = APIKey.objects.create(user=self.user, name='old')
        response = self.client.patch(f'/api/v1/api-keys/{key.pk}', {'name': 'new', 'is_active': False}, format='json')
        self.assertEqual(response.json()['data']['name'], 'new')
        self.assertFalse(response.json()['data']['is_active'])

        revealed = self.client.get(f'/api/v1/api-keys/{key.pk}/reveal').json()['data']['key']
        self.assertEqual(revealed, key.key)

        regenerated = self.client.post(f'/api/v1/api-keys/{key.pk}/regenerate').json()['data']['key']
        self.assertNotEqual(regenerated, key.key)

        self.assertEqual(self.client.delete(f'/api/v1/api-keys/{key.pk}').status_code, 200)
        self.assertFalse(APIKey.objects.filter(pk=key.pk).exists())


class APIKeyAuthenticationTest(TestCase):

    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(username='k@example.com', email='k@example.com')
        self.api_key = APIKey.objects.create(user=self.user, name='svc')
        self.client = APIClient()

    def test_x_api_key_header(self):
        response = self.client.get('/api/auth/me', HTTP_X_API_KEY=self.api_key.key)
        self.assertEqual(response.status_code, 200)
        self.api_key.refresh_from_db()
        self.assertIsNotNone(self.api_key.last_used_at)

    def test_bearer_api_key(self):
        response = self.client.get('/api/auth/me', HTTP_AUTHORIZATION=f'Bearer {self.api_key.key}')
        self.assertEqual(response.status_code, 200)

    def test_inactive_and_expired_keys_rejected(self):
        self.api_key.is_active = False
        self.api_key.save()
        self.assertEqual(self.client.get('/api/auth/me', HTTP_X_API_KEY=self.api_key.key).status_code, 401)

        self.api_key.is_active = True
        self.api_key.expires_at = timezone.now() - timedelta(seconds=1)
        self.api_key.save()
        response = self.client.get('/api/auth/me', HTTP_X_API_KEY=self.api_key.key)
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['error'], 'API key has expired')

    def test_read_only_key_cannot_write(self):
        self.api_key.scopes = ['read']
        self.api_key.save()
        response = self.client.post('/api/v1/api-keys', {'name': 'x'}, format='json', HTTP_X_API_KEY=self.api_key.key)
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['code'], 'INSUFFICIENT_SCOPE')

    def test_key_rate_limit(self):
        self.api_key.rate_limit = 2
        self.api_key.save()
        for _ in range(2):
            self.assertEqual(self.client.get('/api/auth/me', HTTP_X_API_KEY=self.api_key.key).status_code, 200)
        response = self.client.get('/api/auth/me', HTTP_X_API_KEY=self.api_key.key)
        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()['code'], 'RATE_LIMITED')


class FirstErrorTest(TestCase):

    def test_flattens_serializer_errors(self):
        self.assertEqual(first_error({'email': ['Enter a valid email address.']}), 'email: Enter a valid email address.')
        self.assertEqual(first_error({'non_field_errors': ['Bad']}), 'Bad')
        self.assertEqual(first_error(['first', 'second']), 'first')
