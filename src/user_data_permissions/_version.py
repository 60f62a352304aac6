# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.

__version__ = "1.0.0"
