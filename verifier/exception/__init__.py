# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Collection of Exceptions & Errors
"""
from .verification_management_errors import *
from .authorization_response_errors import *
from .presentation_errors import *
