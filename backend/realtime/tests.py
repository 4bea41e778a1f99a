from asgiref.sync import async_to_sync
from channels.db import database_sync_to_async
from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.contrib.auth.models import AnonymousUser
from django.core import mail
from django.test import SimpleTestCase, TransactionTestCase, override_settings
from rest_framework_simplejwt.tokens import AccessToken

from accounts.models import User
from bookings.models import SafetyIncident
from .consumers import NotificationConsumer
from .middleware import JWTAuthMiddleware
from .notifications import SAFETY_GROUP, notify_safety_team, notify_user_event, send_contact_message


def listen(group):
	layer = get_channel_layer()
	channel = async_to_sync(layer.new_channel)()
	async_to_sync(layer.group_add)(group, channel)
	return layer, channel


class NotificationDispatchTests(SimpleTestCase):
	def test_user_event_reaches_personal_group(self):
		layer, channel = listen('user_41')
		self.assertTrue(notify_user_event(41, 'ride_accepted', message='Driver is on the way', extra={'eta': 4}))

		message = async_to_sync(layer.receive)(channel)
		self.assertEqual(message['type'], 'booking.event')
		self.assertEqual(message['event'], 'ride_accepted')
		self.assertEqual(message['eta'], 4)

	def test_missing_user_is_skipped(self):
		self.assertFalse(notify_user_event(None, 'ride_accepted'))

	def test_contact_routing(self):
		self.assertTrue(send_contact_message('friend@example.com', 'Trip', 'Follow me'))
		self.assertTrue(send_contact_message('+94771234567', 'Trip', 'Follow me'))
		self.assertFalse(send_contact_message('   ', 'Trip', 'Follow me'))
		self.assertEqual(len(mail.outbox), 1)
		self.assertEqual(mail.outbox[0].to, ['friend@example.com'])

	@override_settings(ADMINS=[('Safety desk', 'safety@example.com')])
	def test_safety_team_gets_socket_and_mail(self):
		layer, channel = listen(SAFETY_GROUP)
		incident = SafetyIncident(id=5, booking_id=9, reporter_id=3, incident_type='sos', description='Help')

		self.assertTrue(notify_safety_team(incident))
		message = async_to_sync(layer.receive)(channel)
		self.assertEqual(message['incident_id'], 5)
		self.assertEqual(message['message'], 'Help')
		self.assertEqual(len(mail.outbox), 1)
		self.assertIn('SOS', mail.outbox[0].subject)


class NotificationConsumerTests(TransactionTestCase):
	async def connect(self, user):
		communicator = WebsocketCommunicator(NotificationConsumer.as_asgi(), '/ws/notifications/')
		communicator.scope['user'] = user
		connected, _ = await communicator.connect()
		return communicator, connected

	async def test_anonymous_connection_is_refused(self):
		communicator, connected = await self.connect(AnonymousUser())
		self.assertFalse(connected)

	async def test_booking_events_are_relayed(self):
		communicator, connected = await self.connect(User(id=7, username='traveler', role='traveler'))
		self.assertTrue(connected)
		hello = await communicator.receive_json_from()
		self.assertEqual(hello['type'], 'connection_established')
		self.assertFalse(hello['safety_team'])

		await get_channel_layer().group_send('user_7', {
			'type': 'booking.event',
			'event': 'booking_confirmed',
			'booking_id': 3,
			'message': 'Your booking has been confirmed.',
		})
		event = await communicator.receive_json_from()
		self.assertEqual(event, {
			'type': 'booking_confirmed',
			'booking_id': 3,
			'message': 'Your booking has been confirmed.',
		})

		await communicator.send_json_to({'type': 'ping'})
		self.assertEqual(await communicator.receive_json_from(), {'type': 'pong'})
		await communicator.disconnect()

	async def test_moderators_receive_safety_alerts(self):
		communicator, connected = await self.connect(User(id=8, username='mod', role='moderator'))
		self.assertTrue(connected)
		hello = await communicator.receive_json_from()
		self.assertTrue(hello['safety_team'])

		await get_channel_layer().group_send(SAFETY_GROUP, {'type': 'safety.incident', 'incident_id': 12})
		event = await communicator.receive_json_from()
		self.assertEqual(event, {'type': 'safety_incident', 'incident_id': 12})
		await communicator.disconnect()


class JWTAuthMiddlewareTests(TransactionTestCase):
	async def test_bad_token_leaves_connection_anonymous(self):
		seen = {}

		async def inner(scope, receive, send):
			seen['user'] = scope['user']

		await JWTAuthMiddleware(inner)(
			{'type': 'websocket', 'query_string': b'token=not-a-token'}, None, None
		)
		self.assertTrue(seen['user'].is_anonymous)

	async def test_no_token_keeps_session_user(self):
		seen = {}
		user = User(id=3, username='browser')

		async def inner(scope, receive, send):
			seen['user'] = scope['user']

		await JWTAuthMiddleware(inner)({'type': 'websocket', 'query_string': b'', 'user': user}, None, None)
		self.assertIs(seen['user'], user)

	async def test_valid_token_resolves_user(self):
		user = await database_sync_to_async(User.objects.create_user)(username='mobile', password='pass1234')
		token = str(AccessToken.for_user(user))
		seen = {}

		async def inner(scope, receive, send):
			seen['user'] = scope['user']

		await JWTAuthMiddleware(inner)(
			{'type': 'websocket', 'query_string': f'token={token}'.encode()}, None, None
		)
		self.assertEqual(seen['user'].pk, user.pk)
