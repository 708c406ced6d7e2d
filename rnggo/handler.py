"""
RandomNumber - Lambda entry point

Draws a random number in [1, 10] and forwards it to the sinks selected by
the request:

    {"publishToSQS": true, "publishToSNS": false, "publishToEB": true}

Sinks are attempted in the order SQS, SNS, EventBridge. A sink that fails
is logged and skipped; the number is returned no matter how many sinks
failed. Only a failure to resolve the AWS configuration fails the
invocation.
"""
import os
import json
import random
import logging
from dataclasses import dataclass

import boto3

from rnggo.config import Endpoints, aws_connection
from rnggo.errors import ConfigurationError, InvalidRequestError
from rnggo.sinks import DELIVERY_ORDER, MessageSink

logger = logging.getLogger()
logger.setLevel(logging.DEBUG if os.environ.get('RNGGO_DEBUG', 'false').lower() == 'true' else logging.INFO)


RANDOM_MIN = 1
RANDOM_MAX = 10

# request key -> InvocationRequest field
REQUEST_FLAGS = {
    "publishToSQS": "publish_to_sqs",
    "publishToSNS": "publish_to_sns",
    "publishToEB": "publish_to_eb",
}


@dataclass(frozen=True)
class InvocationRequest:
    publish_to_sqs: bool = False
    publish_to_sns: bool = False
    publish_to_eb: bool = False

    @classmethod
    def from_event(cls, event):
        '''Parse the invocation event.

        Accepts either the request document itself or an API Gateway proxy
        event carrying it in "body". Missing flags are False. A flag with a
        non-boolean value is rejected.
        '''
        if event is None:
            event = {}

        if is_proxy_event(event):
            body = event['body']
            if isinstance(body, str):
                try:
                    body = json.loads(body) if body else {}
                except json.JSONDecodeError as e:
                    raise InvalidRequestError(f'Request body is not valid JSON: {e}') from e
            event = body if body is not None else {}

        if not isinstance(event, dict):
            raise InvalidRequestError(f'Expected a JSON object, got {type(event).__name__}')

        flags = {}
        for key, field_name in REQUEST_FLAGS.items():
            value = event.get(key, False)
            if not isinstance(value, bool):
                raise InvalidRequestError(f'{key} must be a boolean, got {value!r}')
            flags[field_name] = value

        return cls(**flags)

    def selected_sinks(self):
        '''Names of the requested sinks, in delivery order'''
        selected = {
            "sqs": self.publish_to_sqs,
            "sns": self.publish_to_sns,
            "eventbridge": self.publish_to_eb,
        }
        return [name for name in DELIVERY_ORDER if selected[name]]


class RandomNumberHandler(object):

    def __init__(self, endpoints=None, session_factory=None,
                 rng=None, region=None, sink_factory=MessageSink.create):
        '''
            @param endpoints rnggo.config.Endpoints, defaults to the deployed resources
            @param session_factory callable returning a boto3 Session, defaults to boto3.session.Session
            @param rng random.Random used to draw the number
            @param region overrides the ambient AWS region
            @param sink_factory callable(name, connection, endpoints) -> MessageSink
        '''
        self.endpoints = endpoints if endpoints is not None else Endpoints()
        self.session_factory = session_factory if session_factory is not None else boto3.session.Session
        self.rng = rng if rng is not None else random.Random()
        self.region = region
        self.sink_factory = sink_factory

    def draw(self):
        return self.rng.randint(RANDOM_MIN, RANDOM_MAX)

    def handle(self, request):
        random_number = self.draw()
        logger.info(f"Generated random number: {random_number}")

        try:
            with aws_connection(self.session_factory, self.region) as connection:
                failed = self.dispatch(request, random_number, connection)
        except ConfigurationError as e:
            logger.error(str(e))
            raise

        logger.info(json.dumps({
            "event": "invocation_complete",
            "random_number": random_number,
            "sinks": request.selected_sinks(),
            "failed": failed,
        }))

        return random_number

    def dispatch(self, request, random_number, connection):
        '''Deliver random_number to every selected sink.

        @return names of the sinks that failed
        '''
        failed = []

        for name in request.selected_sinks():
            try:
                sink = self.sink_factory(name, connection, self.endpoints)
                sink.deliver(random_number)
            except Exception as e:
                display_name = MessageSink.subclasses[name].display_name if name in MessageSink.subclasses else name
                logger.error(f"Failed to deliver random number to {display_name}: {e}")
                failed.append(name)

        return failed


def is_proxy_event(event):
    '''True for an API Gateway (or function URL) proxy event'''
    return isinstance(event, dict) and 'body' in event


def proxy_response(status_code, body):
    return {
        'statusCode': status_code,
        'headers': {
            'Content-Type': 'application/json'
        },
        'body': json.dumps(body)
    }


def lambda_handler(event, context):
    '''Direct invocations return the random number. API Gateway proxy
    invocations get a statusCode/body response; a malformed proxy request is
    answered with a 400 instead of failing the invocation.
    '''
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f'Invocation payload: {event}')

    if not is_proxy_event(event):
        request = InvocationRequest.from_event(event)
        return RandomNumberHandler(Endpoints.from_environ()).handle(request)

    try:
        request = InvocationRequest.from_event(event)
    except InvalidRequestError as e:
        logger.error(f"Rejected request: {e}")
        return proxy_response(400, {'error': str(e)})

    random_number = RandomNumberHandler(Endpoints.from_environ()).handle(request)
    return proxy_response(200, {'RandomNumber': random_number})


if __name__ == '__main__':
    # Local test against the configured endpoints
    test_event = {
        "publishToSQS": True,
        "publishToSNS": True,
        "publishToEB": True
    }

    result = lambda_handler(test_event, None)
    print(f"\nResult: {result}")
