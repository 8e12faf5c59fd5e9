from django.contrib.auth.models import User
from django.core.cache import cache
from django.test import TestCase
from rest_framework.test import APIClient
from hiring.models import Candidate, HiringRequest


class HiringTestCase(TestCase):

    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(username='recruiter@example.com', email='recruiter@example.com')
        self.other = User.objects.create_user(username='other@example.com', email='other@example.com')
        self.client = APIClient()
        self.client.force_authenticate(self.user)

    def open_role(self, title='Backend Engineer', user=None, **fields):
        return HiringRequest.objects.create(
            user=user or self.user, title=title, requirements='Python, Django', **fields
        )


class HiringRequestEndpointsTest(HiringTestCase):

    def test_requires_authentication(self):
        response = APIClient().get('/api/v1/hiring-requests')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['code'], 'AUTH_REQUIRED')

    def test_create(self):
        response = self.client.post('/api/v1/hiring-requests', {
            'title': 'ML Engineer', 'requirements': 'PyTorch', 'webhook_url': 'https://hooks.example.com/robohire',
        }, format='json')
        self.assertEqual(response.status_code, 201)
        data = response.json()['data']
        self.assertEqual((data['title'], data['status'], data['candidate_count']), ('ML Engineer', 'active', 0))
        self.assertEqual(HiringRequest.objects.get().user, self.user)

    def test_create_needs_title_and_requirements(self):
        response = self.client.post('/api/v1/hiring-requests', {'title': 'ML Engineer'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Title and requirements are required')
        self.assertFalse(HiringRequest.objects.exists())

    def test_list_is_scoped_filtered_and_paged(self):
        first = self.open_role('First')
        self.open_role('Second', status='paused')
        self.open_role('Third')
        self.open_role('Not mine', user=self.other)
        Candidate.objects.create(hiring_request=first, name='Ada')

        body = self.client.get('/api/v1/hiring-requests').json()
        self.assertEqual([row['title'] for row in body['data']], ['Third', 'Second', 'First'])
        self.assertEqual(body['data'][2]['candidate_count'], 1)
        self.assertEqual(body['pagination'], {'total': 3, 'limit': 20, 'offset': 0})

        body = self.client.get('/api/v1/hiring-requests', {'status': 'active', 'limit': 1, 'offset': 1}).json()
        self.assertEqual([row['title'] for row in body['data']], ['First'])
        self.assertEqual(body['pagination'], {'total': 2, 'limit': 1, 'offset': 1})

    def test_detail_lists_best_matches_first(self):
        role = self.open_role()
        Candidate.objects.create(hiring_request=role, name='Unscored')
        Candidate.objects.create(hiring_request=role, name='Good', match_score=71.5)
        Candidate.objects.create(hiring_request=role, name='Best', match_score=93)

        data = self.client.get(f'/api/v1/hiring-requests/{role.pk}').json()['data']
        self.assertEqual([row['name'] for row in data['candidates']], ['Best', 'Good', 'Unscored'])
        self.assertEqual(data['candidate_count'], 3)

    def test_other_users_requests_are_not_found(self):
        role = self.open_role(user=self.other)
        for method in ('get', 'patch', 'delete'):
            response = getattr(self.client, method)(f'/api/v1/hiring-requests/{role.pk}', {}, format='json')
            self.assertEqual(response.status_code, 404)
            self.assertEqual(response.json()['error'], 'Hiring request not found')
        self.assertTrue(HiringRequest.objects.filter(pk=role.pk).exists())

    def test_partial_update(self):
        role = self.open_role(job_description='Old description')
        response = self.client.patch(f'/api/v1/hiring-requests/{role.pk}', {'status': 'closed'}, format='json')
        self.assertEqual(response.status_code, 200)
        role.refresh_from_db()
        self.assertEqual((role.status, role.title, role.job_description), ('closed', 'Backend Engineer', 'Old description'))

        response = self.client.patch(f'/api/v1/hiring-requests/{role.pk}', {'status': 'archived'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Invalid status. Must be one of: active, paused, closed')

    def test_delete_removes_candidates(self):
        role = self.open_role()
        Candidate.objects.create(hiring_request=role, name='Ada')
        response = self.client.delete(f'/api/v1/hiring-requests/{role.pk}')
        self.assertEqual(response.json()['data'], {'message': 'Hiring request deleted successfully'})
        self.assertFalse(Candidate.objects.exists())


class CandidateEndpointsTest(HiringTestCase):

    def setUp(self):
        super().setUp()
        self.role = self.open_role()
        self.ada = Candidate.objects.create(hiring_request=self.role, name='Ada', match_score=88)
        self.bob = Candidate.objects.create(hiring_request=self.role, name='Bob', match_score=64, status='screening')
        Candidate.objects.create(hiring_request=self.open_role('Elsewhere'), name='Cy', match_score=99)

    def url(self, candidate=None, role=None):
        base = f'/api/v1/hiring-requests/{(role or self.role).pk}/candidates'
        return f'{base}/{candidate.pk}' if candidate else base

    def test_list(self):
        body = self.client.get(self.url()).json()
        self.assertEqual([row['name'] for row in body['data']], ['Ada', 'Bob'])
        self.assertEqual(body['pagination'], {'total': 2, 'limit': 50, 'offset': 0})

        body = self.client.get(self.url(), {'status': 'screening'}).json()
        self.assertEqual([row['name'] for row in body['data']], ['Bob'])

    def test_update_status(self):
        response = self.client.patch(self.url(self.ada), {'status': 'shortlisted'}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['status'], 'shortlisted')
        self.ada.refresh_from_db()
        self.assertEqual(self.ada.status, 'shortlisted')

    def test_update_status_validation(self):
        response = self.client.patch(self.url(self.ada), {'status': 'hired'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json()['error'],
            'Invalid status. Must be one of: pending, screening, interviewed, shortlisted, rejected',
        )

    def test_candidate_must_belong_to_the_request(self):
        stranger = Candidate.objects.get(name='Cy')
        response = self.client.patch(self.url(stranger), {'status': 'rejected'}, format='json')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error'], 'Candidate not found')

        other_role = self.open_role(user=self.other)
        response = self.client.get(self.url(role=other_role))
        self.assertEqual(response.json()['error'], 'Hiring request not found')
