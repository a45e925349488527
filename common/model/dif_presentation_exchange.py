# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Presentation requests: DIF Presentation Exchange definitions (SIOPv2 / legacy path)
and Digital Credentials Query Language queries (OpenID4VP / Digital Credentials API path).
"""

import re
from typing import Optional

import jsonpath_ng as jsonpath
from jsonpath_ng.jsonpath import Child, Fields as JsonPathFields, JSONPath, Root
from pydantic import BaseModel, ConfigDict


class MissingAttributeException(KeyError):
    def __init__(self, attribute: str, *args: object) -> None:
        super().__init__(*args)
        self.attribute = attribute


class FilterMismatchException(ValueError):
    def __init__(self, attribute: str, pattern: str) -> None:
        super().__init__(f"{attribute} does not match {pattern}")
        self.attribute = attribute
        self.pattern = pattern


#############################
# DIF Presentation Exchange #
#############################


class Filter(BaseModel):
    type: str
    pattern: str | None = None
    const: str | None = None


class Constraint(BaseModel):
    path: list[str]
    filter: Filter | None = None
    purpose: str | None = None
    optional: bool | None = None
    """Constraint is only checked if the attribute is present"""


class Fields(BaseModel):
    fields: list[Constraint]


class InputDescriptor(BaseModel):
    """
    https://identity.foundation/presentation-exchange/spec/v2.0.0/#input-descriptor-object
    """

    id: str
    name: str | None = None
    purpose: str | None = None
    format: dict | None = None
    constraints: Fields


class PresentationDefinition(BaseModel):
    """
    https://identity.foundation/presentation-exchange/spec/v2.0.0/#presentation-definition
    """

    id: str
    input_descriptors: list[InputDescriptor]


def _validate_occurrences(attribute: str, occurrences: list, constraint_filter: Filter) -> None:
    """
    Validate if the the intput-descriptor occurence matches for at leat one item
    """
    for e in occurrences:
        value = str(e) if not isinstance(e, bool) else str(e).lower()
        if constraint_filter.const is not None and value == constraint_filter.const:
            return
        if constraint_filter.pattern is not None and re.search(f"^{constraint_filter.pattern}$", value) is not None:
            return
        if constraint_filter.const is None and constraint_filter.pattern is None:
            return
    raise FilterMismatchException(attribute, constraint_filter.pattern or constraint_filter.const)


def get_validated_attributes(input_descriptor: InputDescriptor, credential: dict) -> list[str]:
    """
    Get the validated attribute names which have been requested in the input-descriptor.

    Raises MissingAttributeException for absent mandatory attributes and
    FilterMismatchException if present values do not pass the filter.
    """
    attributes = []
    for constraint in input_descriptor.constraints.fields:
        constraint_path = constraint.path[0]
        path_matches = jsonpath.parse(constraint_path).find(credential)
        if len(path_matches) < 1:
            if constraint.optional:
                continue
            raise MissingAttributeException(constraint_path)
        field_name = constraint_path.split(".")[-1]
        if constraint.filter is not None:
            _validate_occurrences(field_name, [match.value for match in path_matches], constraint.filter)
        if "credentialSubject" in constraint_path:
            attributes.append(field_name)
    return attributes


##############################################
# Digital Credentials Query Language (DCQL)  #
##############################################


class DCQLClaim(BaseModel):
    path: list[str]


class DCQLCredentialQuery(BaseModel):
    """
    https://openid.net/specs/openid-4-verifiable-presentations-1_0.html#name-credential-query
    """

    model_config = ConfigDict(extra='allow')

    id: str
    format: str
    meta: Optional[dict] = None
    claims: list[DCQLClaim]


class DCQLQuery(BaseModel):
    credentials: list[DCQLCredentialQuery]


def _claim_path_expression(path: list[str]) -> JSONPath:
    expression = Root()
    for segment in path:
        expression = Child(expression, JsonPathFields(segment))
    return expression


def extract_requested_claims(credential_query: DCQLCredentialQuery, document: dict) -> dict[str, object]:
    """
    Values of the claim paths requested by the query found in the document,
    keyed by the dotted path. Claims the holder did not disclose are left out.
    """
    extracted = {}
    for claim in credential_query.claims:
        matches = _claim_path_expression(claim.path).find(document)
        if matches:
            extracted[".".join(claim.path)] = matches[0].value
    return extracted
