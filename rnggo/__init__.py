'''rnggo: a Lambda function that draws a random number and forwards it to
SQS, SNS and EventBridge.
'''

from rnggo.config import Endpoints, aws_connection
from rnggo.errors import (ConfigurationError, InvalidRequestError,
                          RnggoError, SinkDeliveryError)
from rnggo.handler import InvocationRequest, RandomNumberHandler, lambda_handler

__version__ = '0.1.0'
