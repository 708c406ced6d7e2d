#!/usr/bin/env python
import json, sys
import argparse

import boto3
import yaml
try:
    from yaml import CSafeLoader as Loader
except ImportError:
    from yaml import SafeLoader as Loader

from cfn_tools import dump_yaml

from rnggo.config import Endpoints
from rnggo.handler import InvocationRequest, RandomNumberHandler


def load_app_template(path):
    with open(path) as f:
        return yaml.load(f.read(), Loader=Loader)


def endpoints_from_template(app_template):
    '''Endpoints listed under Globals.Endpoints, falling back to the defaults
    for any field not given.

        Globals:
          Endpoints:
            QueueUrl: https://sqs...
            TopicArn: arn:aws:sns:...
            EventBusName: my-bus
            EventSource: com.example.rng
            EventDetailType: RandomNumber
    '''
    configured = app_template.get("Globals", {}).get("Endpoints", {}) or {}
    defaults = Endpoints()
    return Endpoints(
        queue_url=configured.get("QueueUrl", defaults.queue_url),
        topic_arn=configured.get("TopicArn", defaults.topic_arn),
        event_bus_name=configured.get("EventBusName", defaults.event_bus_name),
        event_source=configured.get("EventSource", defaults.event_source),
        event_detail_type=configured.get("EventDetailType", defaults.event_detail_type),
    )


def topic_partition(endpoints):
    return endpoints.topic_arn.split(":")[1]


def event_bus_arn(endpoints):
    # The bus lives in the same account and region as the topic
    _, partition, _, region, account = endpoints.topic_arn.split(":")[:5]
    return f"arn:{partition}:events:{region}:{account}:event-bus/{endpoints.event_bus_name}"


def queue_region(host):
    '''Region from an SQS endpoint host.

        sqs.<region>.amazonaws.com[.cn]    current endpoints
        <region>.queue.amazonaws.com[.cn]  legacy regional endpoints
        queue.amazonaws.com                legacy us-east-1 endpoint
    '''
    labels = host.split(".")
    if labels[0] == "sqs":
        return labels[1]
    if labels[0] == "queue":
        return "us-east-1"
    if len(labels) > 1 and labels[1] == "queue":
        return labels[0]
    raise ValueError(f'Unrecognized SQS endpoint: {host}')


def queue_arn(endpoints):
    # https://sqs.<region>.amazonaws.com/<account>/<name>
    # The queue shares the topic's partition (aws, aws-cn, aws-us-gov)
    host, account, name = endpoints.queue_url.split("://", 1)[-1].split("/")[:3]
    return f"arn:{topic_partition(endpoints)}:sqs:{queue_region(host)}:{account}:{name}"


def generate_sam_template(app_template):
    ''' Given an rnggo app template, return an AWS SAM template as a python dict

        @param app_template python dict

        @return sam_template python dict
    '''
    endpoints = endpoints_from_template(app_template)
    function = app_template["Function"]["Properties"]

    # boilerplate SAM template fields
    sam_template = {"AWSTemplateFormatVersion": '2010-09-09',
                    "Transform": "AWS::Serverless-2016-10-31"}

    # Endpoint identifiers reach the Lambda code as environment variables.
    # See rnggo.config.Endpoints.from_environ
    sam_template["Globals"] = {
        "Function": {
            "Timeout": function.get("Timeout", 30),
            "Environment": {
                "Variables": endpoints.as_environment()
            }
        }
    }

    if "MemorySize" in function:
        sam_template["Globals"]["Function"]["MemorySize"] = function["MemorySize"]

    policies = ["AWSLambdaBasicExecutionRole", {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Action": "sqs:SendMessage",
                "Resource": queue_arn(endpoints)
            },
            {
                "Effect": "Allow",
                "Action": "sns:Publish",
                "Resource": endpoints.topic_arn
            },
            {
                "Effect": "Allow",
                "Action": "events:PutEvents",
                "Resource": event_bus_arn(endpoints)
            }
        ]
    }]

    sam_template["Resources"] = {
        "RandomNumberFunction": {
            "Type": "AWS::Serverless::Function",
            "Properties": {
                "Handler": function.get("Handler", "rnggo.handler.lambda_handler"),
                "Runtime": function["Runtime"],
                "CodeUri": function["CodeUri"],
                "Policies": policies
            }
        }
    }

    sam_template["Outputs"] = {
        "RandomNumberFunction": {"Value": {"Fn::GetAtt": ["RandomNumberFunction", "Arn"]}}
    }

    return sam_template


def template(args):
    try:
        app_template = load_app_template(args.template)
    except Exception as e:
        print(f'\033[31m\n Template generation failed!\n\n Make sure {args.template} exists and is valid YAML\033[0m')
        raise e

    sam_template = generate_sam_template(app_template)

    with open(args.output, 'w') as f:
        f.write(dump_yaml(sam_template))

    print(f'\033[32m{args.output} created\033[0m')


def request_from_args(args):
    return InvocationRequest(publish_to_sqs=args.sqs,
                             publish_to_sns=args.sns,
                             publish_to_eb=args.eb)


def request_payload(request):
    return {
        "publishToSQS": request.publish_to_sqs,
        "publishToSNS": request.publish_to_sns,
        "publishToEB": request.publish_to_eb,
    }


def local(args):
    handler = RandomNumberHandler(Endpoints.from_environ(), region=args.region)
    result = handler.handle(request_from_args(args))
    print(result)
    return result


def invoke(args):
    '''Invoke the deployed function and print the random number it returned.

    @return 0 on success, 1 if the function raised
    '''
    client = boto3.client('lambda', region_name=args.region)
    payload = request_payload(request_from_args(args))

    response = client.invoke(
        FunctionName=args.function,
        InvocationType='RequestResponse',
        Payload=json.dumps(payload)
    )

    result = json.loads(response['Payload'].read())

    if 'FunctionError' in response:
        print(f"\033[31mFunction Error: {response['FunctionError']}\033[0m", file=sys.stderr)
        if isinstance(result, dict):
            if 'errorType' in result:
                print(f"Error Type: {result['errorType']}", file=sys.stderr)
            if 'errorMessage' in result:
                print(f"Error Message: {result['errorMessage']}", file=sys.stderr)
        return 1

    print(result)
    return 0


def add_sink_flags(parser):
    parser.add_argument("--sqs", help="send the number to the SQS queue",
        action="store_true", default=False)
    parser.add_argument("--sns", help="publish the number to the SNS topic",
        action="store_true", default=False)
    parser.add_argument("--eb", help="put the number on the EventBridge bus",
        action="store_true", default=False)
    parser.add_argument("-r", "--region", help="AWS region (defaults to the ambient configuration)")


def build_parser():
    parser = argparse.ArgumentParser(description='rnggo CLI utility for deploying and invoking the random number function',
        prog='rnggo-cli')

    subparsers = parser.add_subparsers(title='command', dest="command", required=True)

    template_parser = subparsers.add_parser("template", description="generate an AWS SAM template")
    template_parser.add_argument('-t', '--template', default='rnggo-template.yaml',
        help="rnggo app template file")
    template_parser.add_argument('-o', '--output', default='template.yaml',
        help="SAM template to write")

    local_parser = subparsers.add_parser("local", description="run the handler in this process")
    add_sink_flags(local_parser)

    invoke_parser = subparsers.add_parser("invoke", description="invoke the deployed function")
    invoke_parser.add_argument('-f', '--function', required=True, help="function name or ARN")
    add_sink_flags(invoke_parser)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    if args.command == 'template':
        template(args)
    elif args.command == 'local':
        local(args)
    elif args.command == 'invoke':
        return invoke(args)
    else:
        raise IOError(f'Unknown command: {args.command}')

    return 0


if __name__ == '__main__':
    sys.exit(main())
