"""
Sink adapter tests against real boto3 clients wrapped in botocore's Stubber.
No request leaves the process.
"""
import json

import boto3
import pytest
from botocore.exceptions import ClientError
from botocore.stub import Stubber

from rnggo.errors import SinkDeliveryError
from rnggo.sinks import (DELIVERY_ORDER, EventBridgeSink, MessageSink,
                         SNSSink, SQSSink, event_detail)


class StubbedConnection(object):
    '''Stands in for rnggo.config.AWSConnection, handing out stubbed clients'''

    def __init__(self):
        self.clients = {}
        self.stubbers = {}

    def stub(self, service_name):
        client = boto3.client(service_name, region_name='us-east-1',
                              aws_access_key_id='testing', aws_secret_access_key='testing')
        stubber = Stubber(client)
        self.clients[service_name] = client
        self.stubbers[service_name] = stubber
        return stubber

    def client(self, service_name):
        return self.clients[service_name]


@pytest.fixture
def connection():
    return StubbedConnection()


def test_registry_has_all_sinks():
    assert set(DELIVERY_ORDER) <= set(MessageSink.subclasses)
    assert MessageSink.subclasses['sqs'] is SQSSink
    assert MessageSink.subclasses['sns'] is SNSSink
    assert MessageSink.subclasses['eventbridge'] is EventBridgeSink


def test_create_unknown_sink(connection, endpoints):
    with pytest.raises(ValueError):
        MessageSink.create('kinesis', connection, endpoints)


def test_create_known_sink(connection, endpoints):
    sink = MessageSink.create('sns', connection, endpoints)
    assert isinstance(sink, SNSSink)
    assert sink.target == endpoints.topic_arn
    assert repr(sink) == f'<SNSSink({endpoints.topic_arn})>'


def test_sqs_sends_decimal_text(connection, endpoints):
    stubber = connection.stub('sqs')
    stubber.add_response('send_message',
                         {'MessageId': 'a1b2c3', 'MD5OfMessageBody': '8f14e45fceea167a5a36dedd4bea2543'},
                         {'QueueUrl': endpoints.queue_url, 'MessageBody': '7'})

    with stubber:
        ret = SQSSink(connection, endpoints).deliver(7)

    assert ret['MessageId'] == 'a1b2c3'
    stubber.assert_no_pending_responses()


def test_sns_publishes_decimal_text(connection, endpoints):
    stubber = connection.stub('sns')
    stubber.add_response('publish', {'MessageId': 'd4e5f6'},
                         {'TopicArn': endpoints.topic_arn, 'Message': '10'})

    with stubber:
        SNSSink(connection, endpoints).deliver(10)

    stubber.assert_no_pending_responses()


def test_event_detail_is_compact_json():
    assert event_detail(7) == '{"RandomNumber":7}'


def test_eventbridge_puts_one_event(connection, endpoints):
    stubber = connection.stub('events')
    expected = {
        'Entries': [{
            'Source': endpoints.event_source,
            'DetailType': endpoints.event_detail_type,
            'Detail': '{"RandomNumber":7}',
            'EventBusName': endpoints.event_bus_name,
        }]
    }
    stubber.add_response('put_events', {'FailedEntryCount': 0, 'Entries': [{'EventId': 'e-1'}]}, expected)

    with stubber:
        EventBridgeSink(connection, endpoints).deliver(7)

    stubber.assert_no_pending_responses()


def test_eventbridge_failed_entry_raises(connection, endpoints):
    stubber = connection.stub('events')
    stubber.add_response('put_events', {
        'FailedEntryCount': 1,
        'Entries': [{'ErrorCode': 'InternalFailure', 'ErrorMessage': 'try again'}]
    })

    with stubber:
        with pytest.raises(SinkDeliveryError) as excinfo:
            EventBridgeSink(connection, endpoints).deliver(3)

    assert excinfo.value.sink == 'EventBridge'
    assert 'InternalFailure' in str(excinfo.value)


@pytest.mark.parametrize("sink_class,service_name,operation", [
    (SQSSink, 'sqs', 'send_message'),
    (SNSSink, 'sns', 'publish'),
    (EventBridgeSink, 'events', 'put_events'),
])
def test_backend_errors_propagate(connection, endpoints, sink_class, service_name, operation):
    stubber = connection.stub(service_name)
    stubber.add_client_error(operation, service_error_code='AccessDenied',
                             service_message='not authorized', http_status_code=403)

    with stubber:
        with pytest.raises(ClientError) as excinfo:
            sink_class(connection, endpoints).deliver(1)

    assert excinfo.value.response['Error']['Code'] == 'AccessDenied'


def test_detail_round_trips_through_json():
    for n in range(1, 11):
        assert json.loads(event_detail(n)) == {"RandomNumber": n}
