#!/usr/bin/env python

import pytest

from splitkit.conditions import evalCondition, getPath, paddedVersionString

ATTRIBUTES = {
    "id": "123",
    "age": 32,
    "country": "US",
    "premium": True,
    "tags": ["beta", "mobile"],
    "scores": [3, 7, 12],
    "company": {"plan": "pro", "seats": 25},
    "version": "1.2.3",
    "empty": None,
}


@pytest.mark.parametrize(
    "condition,expected",
    [
        ({}, True),
        ({"country": "US"}, True),
        ({"country": "CA"}, False),
        ({"company.plan": "pro"}, True),
        ({"company.missing": None}, True),
        ({"age": {"$gt": 30, "$lt": 40}}, True),
        ({"age": {"$gte": 33}}, False),
        ({"age": {"$lte": 32}}, True),
        ({"age": {"$eq": "32"}}, True),
        ({"age": {"$ne": 32}}, False),
        ({"country": {"$in": ["US", "CA"]}}, True),
        ({"country": {"$nin": ["US", "CA"]}}, False),
        ({"country": {"$in": "US"}}, False),
        ({"tags": {"$in": ["beta"]}}, True),
        ({"tags": {"$all": ["beta", "mobile"]}}, True),
        ({"tags": {"$all": ["beta", "desktop"]}}, False),
        ({"tags": {"$size": 2}}, True),
        ({"tags": {"$size": {"$gt": 2}}}, False),
        ({"scores": {"$elemMatch": {"$gt": 10}}}, True),
        ({"scores": {"$elemMatch": {"$gt": 20}}}, False),
        ({"id": {"$regex": "^1"}}, True),
        ({"id": {"$regex": "[invalid"}}, False),
        ({"empty": {"$exists": False}}, True),
        ({"premium": {"$exists": True}}, True),
        ({"premium": {"$type": "boolean"}}, True),
        ({"age": {"$type": "number"}}, True),
        ({"tags": {"$type": "array"}}, True),
        ({"country": {"$not": {"$in": ["FR"]}}}, True),
        ({"version": {"$vgt": "1.2.0"}}, True),
        ({"version": {"$vlt": "1.10.0"}}, True),
        ({"version": {"$veq": "v1.2.3+build5"}}, True),
        ({"version": {"$vgte": "1.2.3-beta"}}, True),
        ({"age": {"$unknown": 1}}, False),
        ({"$or": [{"country": "CA"}, {"premium": True}]}, True),
        ({"$or": []}, True),
        ({"$nor": [{"country": "CA"}, {"premium": True}]}, False),
        ({"$and": [{"country": "US"}, {"age": {"$gt": 40}}]}, False),
        ({"$not": {"country": "CA"}}, True),
        ({"age": {"$gt": "abc"}}, False),
    ],
)
def test_conditions(condition, expected):
    assert evalCondition(ATTRIBUTES, condition) is expected


def test_get_path():
    assert getPath(ATTRIBUTES, "company.seats") == 25
    assert getPath(ATTRIBUTES, "company.seats.more") is None
    assert getPath(ATTRIBUTES, "missing") is None


def test_padded_version_string_orders_prereleases_first():
    assert paddedVersionString("1.0.0-beta") < paddedVersionString("1.0.0")
    assert paddedVersionString("2.0.0") < paddedVersionString("10.0.0")
    assert paddedVersionString(None) == paddedVersionString("0")


class AttributeDict(dict):
    pass


def test_dict_subclass_attributes():
    attributes = AttributeDict({"company": "acme", "meta": AttributeDict({"plan": "pro"})})

    assert getPath(attributes, "meta.plan") == "pro"
    assert evalCondition(attributes, {"meta.plan": "pro"}) is True
    assert evalCondition(attributes, {"meta.plan": "free"}) is False
