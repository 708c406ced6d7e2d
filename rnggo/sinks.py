import json
import logging

from rnggo.errors import SinkDeliveryError

logger = logging.getLogger(__name__)


# Sinks are always attempted in this order, regardless of the order the
# request flags arrive in.
DELIVERY_ORDER = ("sqs", "sns", "eventbridge")


class MessageSink(object):
    '''Delivers one random number to one messaging backend.

    Variants register themselves with @MessageSink.add_sink(name) and are
    instantiated by name through MessageSink.create(). Each variant makes a
    single outbound call per deliver() and lets any error propagate; deciding
    what a failure means is left to the caller.
    '''

    subclasses = {}
    name = None
    target = None
    display_name = None
    service_name = None

    def __init__(self, connection, endpoints):
        '''
            @param connection rnggo.config.AWSConnection shared by all sinks
            @param endpoints rnggo.config.Endpoints
        '''
        self.connection = connection
        self.endpoints = endpoints

    @classmethod
    def add_sink(cls, sink_name):
        def wrapper(subclass):
            subclass.name = sink_name
            cls.subclasses[sink_name] = subclass
            return subclass

        return wrapper

    @classmethod
    def create(cls, sink_name, *params):
        if sink_name not in cls.subclasses:
            raise ValueError(f'rnggo does not support {sink_name} as a message sink')

        return cls.subclasses[sink_name](*params)

    @property
    def client(self):
        return self.connection.client(self.service_name)

    def deliver(self, random_number):
        raise NotImplementedError

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.target})>'


@MessageSink.add_sink('sqs')
class SQSSink(MessageSink):
    display_name = "SQS"
    service_name = "sqs"

    @property
    def target(self):
        return self.endpoints.queue_url

    def deliver(self, random_number):
        ret = self.client.send_message(QueueUrl=self.endpoints.queue_url,
                                       MessageBody=str(random_number))
        logger.info("Message sent to SQS")
        logger.debug(f'SQS MessageId: {ret.get("MessageId")}')
        return ret


@MessageSink.add_sink('sns')
class SNSSink(MessageSink):
    display_name = "SNS"
    service_name = "sns"

    @property
    def target(self):
        return self.endpoints.topic_arn

    def deliver(self, random_number):
        ret = self.client.publish(TopicArn=self.endpoints.topic_arn,
                                  Message=str(random_number))
        logger.info("Message published to SNS")
        logger.debug(f'SNS MessageId: {ret.get("MessageId")}')
        return ret


def event_detail(random_number):
    '''The EventBridge detail document, e.g. {"RandomNumber":7}'''
    return json.dumps({"RandomNumber": random_number}, separators=(',', ':'))


@MessageSink.add_sink('eventbridge')
class EventBridgeSink(MessageSink):
    display_name = "EventBridge"
    service_name = "events"

    @property
    def target(self):
        return self.endpoints.event_bus_name

    def deliver(self, random_number):
        ret = self.client.put_events(Entries=[
            {
                "Source": self.endpoints.event_source,
                "DetailType": self.endpoints.event_detail_type,
                "Detail": event_detail(random_number),
                "EventBusName": self.endpoints.event_bus_name,
            }
        ])

        # PutEvents succeeds at the HTTP level even when individual entries
        # are rejected. The only entry is reported in Entries[0].
        if ret.get("FailedEntryCount", 0) > 0:
            entry = ret["Entries"][0]
            raise SinkDeliveryError(self.display_name,
                                    f'{entry.get("ErrorCode")}: {entry.get("ErrorMessage")}')

        logger.info("Event published to EventBridge")
        return ret
