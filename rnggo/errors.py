class RnggoError(Exception):
    pass


class ConfigurationError(RnggoError):
    '''The AWS connection could not be resolved. Fatal for an invocation.'''
    pass


class SinkDeliveryError(RnggoError):
    '''A backend accepted the request but reported the message as failed.'''

    def __init__(self, sink, message):
        super(SinkDeliveryError, self).__init__(f'{sink}: {message}')
        self.sink = sink


class InvalidRequestError(RnggoError, ValueError):
    pass
