import os
import logging
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError

from rnggo.errors import ConfigurationError

logger = logging.getLogger(__name__)


SQS_QUEUE_URL = "https://sqs.us-east-1.amazonaws.com/425362996713/nhulston-go-queue"
SNS_TOPIC_ARN = "arn:aws:sns:us-east-1:425362996713:nhulston-go-topic"
EVENT_BUS_NAME = "nhulston-go-bus"
EVENT_SOURCE = "com.nhulston.rnggo"
EVENT_DETAIL_TYPE = "RandomNumber"


@dataclass(frozen=True)
class Endpoints:
    '''Where the random number goes.

    The defaults are the pre-provisioned resources the function is deployed
    against. Tests construct their own instance with fake identifiers.
    '''
    queue_url: str = SQS_QUEUE_URL
    topic_arn: str = SNS_TOPIC_ARN
    event_bus_name: str = EVENT_BUS_NAME
    event_source: str = EVENT_SOURCE
    event_detail_type: str = EVENT_DETAIL_TYPE

    @classmethod
    def from_environ(cls, environ=None):
        '''Build Endpoints, letting RNGGO_* environment variables override
        the defaults.

        The SAM template generated by `rnggo-cli template` sets these
        variables on the function.
        '''
        if environ is None:
            environ = os.environ

        overrides = {}
        for field_name, var in ENVIRONMENT_VARIABLES.items():
            value = environ.get(var)
            if value:
                overrides[field_name] = value

        return replace(cls(), **overrides)

    def as_environment(self) -> Dict[str, str]:
        return {var: getattr(self, f) for f, var in ENVIRONMENT_VARIABLES.items()}


ENVIRONMENT_VARIABLES = {
    "queue_url": "RNGGO_SQS_QUEUE_URL",
    "topic_arn": "RNGGO_SNS_TOPIC_ARN",
    "event_bus_name": "RNGGO_EVENT_BUS_NAME",
    "event_source": "RNGGO_EVENT_SOURCE",
    "event_detail_type": "RNGGO_EVENT_DETAIL_TYPE",
}


class AWSConnection(object):
    '''A resolved boto3 session plus the service clients created from it.

    Clients are created on first use and shared for the rest of the
    invocation. close() releases every client's HTTP connection pool.
    '''

    def __init__(self, session):
        self.session = session
        self.region = session.region_name
        self._clients = {}

    def client(self, service_name):
        if service_name not in self._clients:
            self._clients[service_name] = self.session.client(service_name, region_name=self.region)
        return self._clients[service_name]

    def close(self):
        while self._clients:
            name, client = self._clients.popitem()
            try:
                client.close()
            except Exception as e:
                logger.warning(f'Failed to close {name} client: {e}')


def resolve_session(session_factory=boto3.session.Session, region: Optional[str] = None):
    '''Resolve AWS configuration from the ambient environment.

    Raises ConfigurationError if botocore cannot load the configuration
    (e.g. AWS_PROFILE names a missing profile) or no region is set.
    '''
    try:
        if region is not None:
            session = session_factory(region_name=region)
        else:
            session = session_factory()
    except BotoCoreError as e:
        raise ConfigurationError(f'Failed to load AWS config: {e}') from e

    if not session.region_name:
        raise ConfigurationError('Failed to load AWS config: no region configured. '
                                 'Set AWS_REGION or AWS_DEFAULT_REGION.')

    return session


@contextmanager
def aws_connection(session_factory=boto3.session.Session, region=None):
    session = resolve_session(session_factory, region)
    connection = AWSConnection(session)
    try:
        yield connection
    finally:
        connection.close()
