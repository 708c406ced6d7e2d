import os

import pytest

from rnggo.config import Endpoints


# Keep boto3 away from real credentials and profiles
os.environ['AWS_ACCESS_KEY_ID'] = 'testing'
os.environ['AWS_SECRET_ACCESS_KEY'] = 'testing'
os.environ['AWS_DEFAULT_REGION'] = 'us-east-1'
os.environ.pop('AWS_PROFILE', None)


class FakeClient(object):
    '''Records every call in a log shared with the other fake clients'''

    def __init__(self, service_name, calls, failures):
        self.service_name = service_name
        self.calls = calls
        self.failures = failures
        self.closed = False

    def _call(self, operation, kwargs, response):
        self.calls.append((self.service_name, operation, kwargs))
        if self.service_name in self.failures:
            raise self.failures[self.service_name]
        return response

    def send_message(self, **kwargs):
        return self._call('send_message', kwargs, {'MessageId': 'sqs-1'})

    def publish(self, **kwargs):
        return self._call('publish', kwargs, {'MessageId': 'sns-1'})

    def put_events(self, **kwargs):
        return self._call('put_events', kwargs, {'FailedEntryCount': 0, 'Entries': [{'EventId': 'eb-1'}]})

    def close(self):
        self.closed = True


class FakeSession(object):

    def __init__(self, region_name='us-east-1', failures=None):
        self.region_name = region_name
        self.calls = []
        self.failures = failures or {}
        self.clients = []

    def client(self, service_name, region_name=None):
        client = FakeClient(service_name, self.calls, self.failures)
        self.clients.append(client)
        return client

    def factory(self, region_name=None):
        if region_name is not None:
            self.region_name = region_name
        return self


@pytest.fixture
def endpoints():
    return Endpoints(
        queue_url='https://sqs.us-east-1.amazonaws.com/123456789012/test-queue',
        topic_arn='arn:aws:sns:us-east-1:123456789012:test-topic',
        event_bus_name='test-bus',
        event_source='com.example.test',
        event_detail_type='TestNumber',
    )


@pytest.fixture
def fake_session():
    return FakeSession()
