# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
