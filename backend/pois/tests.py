from decimal import Decimal

from django.test import SimpleTestCase, TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from common.utils import Location
from services.exceptions import MissingEvidence, OutsideServiceArea, POINotFound, Unauthorized
from services.moderation import classify_poi, moderate_poi, names_are_similar, normalize_name, submit_poi
from .models import ApprovalStatus, PointOfInterest
from .views import submit_poi_view

GALLE_FORT = Location(6.0267, 80.2170)
# ~50 m north
NEXT_DOOR = Location(6.02715, 80.2170)
# ~5 km north
DOWN_THE_ROAD = Location(6.0717, 80.2170)

PHOTO = ['https://cdn.example.com/poi/1.jpg']


class NameSimilarityTests(SimpleTestCase):
	def test_generic_nouns_are_ignored(self):
		self.assertEqual(normalize_name('Galle Fort Museum'), 'galle fort')
		self.assertEqual(normalize_name("  St. Mary's  Church!"), 'st mary s church')
		self.assertEqual(normalize_name('Beach'), 'beach')

	def test_similar_names(self):
		self.assertTrue(names_are_similar('Galle Fort', 'Galle Fort Museum'))
		self.assertTrue(names_are_similar('Temple of the Tooth', 'Tooth Temple'))
		self.assertTrue(names_are_similar('Galle Lighthouse', 'Galle Fort'))
		self.assertTrue(names_are_similar('Beach', 'beach'))

	def test_dissimilar_names(self):
		self.assertFalse(names_are_similar('Jungle Beach Cafe', 'Galle Fort'))
		self.assertFalse(names_are_similar('Unawatuna', 'Mirissa'))
		# shared word but very different lengths
		self.assertFalse(names_are_similar('Galle Fort', 'Galle Dutch Reformed Church'))
		self.assertFalse(names_are_similar('', 'Galle Fort'))


class POISubmissionTests(TestCase):
	def setUp(self):
		self.user = User.objects.create_user(username='explorer', password='pass1234')
		self.moderator = User.objects.create_user(username='mod', password='pass1234', role='moderator')
		self.museum = PointOfInterest.objects.create(
			name='Galle Fort Museum',
			category='historical',
			latitude=Decimal(str(GALLE_FORT.latitude)),
			longitude=Decimal(str(GALLE_FORT.longitude)),
			images=PHOTO,
			approval_status=ApprovalStatus.APPROVED,
		)

	def test_similar_name_nearby_needs_review(self):
		result = submit_poi(self.user, 'Galle Fort', NEXT_DOOR, 'historical', PHOTO)

		self.assertEqual(result.poi.approval_status, ApprovalStatus.NEEDS_REVIEW)
		self.assertEqual([poi for poi, _ in result.similar], [self.museum])
		self.assertLess(result.similar[0][1], 0.1)

	def test_different_name_nearby_is_approved(self):
		result = submit_poi(self.user, 'Jungle Beach Cafe', NEXT_DOOR, 'restaurant', PHOTO)
		self.assertEqual(result.poi.approval_status, ApprovalStatus.APPROVED)

	def test_same_name_far_away_is_approved(self):
		result = submit_poi(self.user, 'Galle Fort', DOWN_THE_ROAD, 'historical', PHOTO)
		self.assertEqual(result.poi.approval_status, ApprovalStatus.APPROVED)

	def test_rejected_points_do_not_block(self):
		PointOfInterest.objects.filter(pk=self.museum.pk).update(approval_status=ApprovalStatus.REJECTED)
		self.assertEqual(classify_poi('Galle Fort', NEXT_DOOR), ApprovalStatus.APPROVED)

	def test_classify_is_a_dry_run(self):
		self.assertEqual(classify_poi('Galle Fort', NEXT_DOOR), ApprovalStatus.NEEDS_REVIEW)
		self.assertEqual(PointOfInterest.objects.count(), 1)

	def test_photo_is_required(self):
		with self.assertRaises(MissingEvidence):
			submit_poi(self.user, 'Hidden Waterfall', DOWN_THE_ROAD, 'nature', [])
		with self.assertRaises(MissingEvidence):
			submit_poi(self.user, 'Hidden Waterfall', DOWN_THE_ROAD, 'nature', [''])

	def test_outside_service_area(self):
		with self.assertRaises(OutsideServiceArea):
			submit_poi(self.user, 'Big Ben', Location(51.5007, -0.1246), 'attraction', PHOTO)

	def test_moderation(self):
		held = submit_poi(self.user, 'Galle Fort', NEXT_DOOR, 'historical', PHOTO).poi

		with self.assertRaises(Unauthorized):
			moderate_poi(held.id, self.user, 'approve')

		result = moderate_poi(held.id, self.moderator, 'reject', 'Duplicate of the museum')
		self.assertEqual(result.poi.approval_status, ApprovalStatus.REJECTED)
		self.assertEqual(result.poi.rejection_reason, 'Duplicate of the museum')
		self.assertEqual(result.poi.reviewed_by, self.moderator)

		with self.assertRaises(POINotFound):
			moderate_poi(9999, self.moderator, 'approve')

	def test_submit_view(self):
		factory = APIRequestFactory()
		request = factory.post('/api/pois/', {
			'name': 'Galle Fort',
			'latitude': NEXT_DOOR.latitude,
			'longitude': NEXT_DOOR.longitude,
			'category': 'historical',
			'images': PHOTO,
		}, format='json')
		force_authenticate(request, user=self.user)
		response = submit_poi_view(request)

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['approval_status'], 'needs_review')
		self.assertEqual(response.data['similar_to'][0]['id'], self.museum.id)

		request = factory.post('/api/pois/', {
			'name': 'Secret Cove',
			'latitude': DOWN_THE_ROAD.latitude,
			'longitude': DOWN_THE_ROAD.longitude,
		}, format='json')
		force_authenticate(request, user=self.user)
		response = submit_poi_view(request)

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error'], 'image_required')
