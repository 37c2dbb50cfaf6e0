import pytest

from bookstore_queries import Collection, DuplicateKeyError, MalformedQueryError


def make_collection():
    coll = Collection("books", "plp_bookstore")
    coll.insert_many([
        {"title": "A", "author": "X", "genre": "Fiction", "published_year": 1984, "price": 12.0, "in_stock": True},
        {"title": "B", "author": "Y", "genre": "Fiction", "published_year": 2020, "price": 8.0, "in_stock": False},
        {"title": "C", "author": "X", "genre": "Sci-Fi", "published_year": 1965, "price": 12.0, "in_stock": True},
        {"title": "D", "author": "Z", "genre": "Sci-Fi", "published_year": 1999, "price": 20.0, "in_stock": True},
        {"title": "E", "author": "Y", "genre": "Poetry", "published_year": "unknown", "price": 5.5},
    ])
    return coll


def titles(docs):
    return [d["title"] for d in docs]


def test_equality_range_and_compound_filters():
    coll = make_collection()
    assert titles(coll.find({"genre": "Fiction"})) == ["A", "B"]
    # string year never matches a numeric range
    assert titles(coll.find({"published_year": {"$gt": 1970}})) == ["A", "B", "D"]
    assert titles(coll.find({"in_stock": True, "published_year": {"$gt": 1970}})) == ["A", "D"]
    assert titles(coll.find({"$or": [{"title": "A"}, {"price": {"$lt": 6}}]})) == ["A", "E"]
    assert titles(coll.find({"in_stock": {"$exists": False}})) == ["E"]
    assert titles(coll.find({"author": {"$in": ["Z", "Q"]}})) == ["D"]


def test_no_match_returns_empty():
    coll = make_collection()
    assert list(coll.find({"genre": "Cookbook"})) == []
    assert list(coll.find({"published_year": {"$gt": 3000}})) == []


def test_sort_is_stable_and_reversible():
    coll = make_collection()
    asc = list(coll.find({"price": {"$gte": 0}}).sort("price", 1))
    desc = list(coll.find({"price": {"$gte": 0}}).sort("price", -1))
    assert [d["price"] for d in asc] == [5.5, 8.0, 12.0, 12.0, 20.0]
    assert [d["price"] for d in desc] == [20.0, 12.0, 12.0, 8.0, 5.5]
    # ties keep insertion order in both directions
    assert titles(asc)[2:4] == ["A", "C"]
    assert titles(desc)[1:3] == ["A", "C"]


def test_multi_key_sort():
    coll = make_collection()
    got = coll.find({"price": 12.0}).sort([("price", 1), ("published_year", 1)])
    assert titles(got) == ["C", "A"]


def test_skip_and_limit_window():
    coll = make_collection()
    assert titles(coll.find().limit(2)) == ["A", "B"]
    assert titles(coll.find().skip(2).limit(2)) == ["C", "D"]
    assert titles(coll.find().skip(4).limit(2)) == ["E"]
    assert list(coll.find().skip(10).limit(2)) == []
    with pytest.raises(MalformedQueryError):
        coll.find().skip(-1)


def test_projection_include_and_exclude():
    coll = make_collection()
    got = coll.find_one({"title": "A"}, {"title": 1, "price": 1, "_id": 0})
    assert got == {"title": "A", "price": 12.0}
    got = coll.find_one({"title": "A"}, {"title": 1})
    assert set(got) == {"_id", "title"}
    got = coll.find_one({"title": "A"}, {"genre": 0, "in_stock": 0})
    assert "genre" not in got and "author" in got
    with pytest.raises(MalformedQueryError):
        coll.find({}, {"title": 1, "genre": 0})


def test_update_one_touches_first_match_only():
    coll = make_collection()
    res = coll.update_one({"author": "X"}, {"$set": {"price": 1.0}})
    assert (res.matched_count, res.modified_count) == (1, 1)
    assert [d["price"] for d in coll.find({"author": "X"})] == [1.0, 12.0]


def test_update_without_change_or_match():
    coll = make_collection()
    res = coll.update_one({"title": "A"}, {"$set": {"price": 12.0}})
    assert (res.matched_count, res.modified_count) == (1, 0)
    res = coll.update_one({"title": "Nonexistent Book"}, {"$set": {"price": 1.0}})
    assert (res.matched_count, res.modified_count) == (0, 0)


def test_update_operators_and_rejections():
    coll = make_collection()
    coll.update_one({"title": "A"}, {"$inc": {"price": 0.5}, "$unset": {"in_stock": ""}})
    doc = coll.find_one({"title": "A"})
    assert doc["price"] == 12.5 and "in_stock" not in doc
    with pytest.raises(MalformedQueryError):
        coll.update_one({"title": "A"}, {"price": 3})
    with pytest.raises(MalformedQueryError):
        coll.update_one({"title": "A"}, {"$rename": {"price": "cost"}})


def test_failed_update_leaves_document_and_index_untouched():
    coll = make_collection()
    coll.create_index("title")
    with pytest.raises(MalformedQueryError):
        coll.update_one({"title": "A"}, {"$set": {"price": 1}, "$inc": {"title": 1}})
    with pytest.raises(MalformedQueryError):
        coll.update_one({"title": "A"}, {"$inc": {"price": "cheap"}})
    doc = coll.find_one({"title": "A"}, {"_id": 0})
    assert doc["price"] == 12.0
    assert coll.find({"title": "A"}).explain()["executionStats"]["nReturned"] == 1


def test_delete_one_then_find_is_empty():
    coll = make_collection()
    coll.insert_one({"title": "New Book", "price": 15.99})
    coll.insert_one({"title": "New Book", "price": 15.99})
    assert coll.delete_one({"title": "New Book"}).deleted_count == 1
    assert coll.delete_one({"title": "New Book"}).deleted_count == 1
    assert list(coll.find({"title": "New Book"})) == []
    assert coll.delete_one({"title": "New Book"}).deleted_count == 0


def test_duplicate_id_rejected():
    coll = Collection()
    coll.insert_one({"_id": 1, "title": "A"})
    with pytest.raises(DuplicateKeyError):
        coll.insert_one({"_id": 1, "title": "B"})


def test_unknown_operator_is_malformed():
    coll = make_collection()
    with pytest.raises(MalformedQueryError):
        coll.find({"price": {"$near": 3}})
    with pytest.raises(MalformedQueryError):
        coll.find({"$nor": [{"title": "A"}]})


def test_create_index_names_and_idempotence():
    coll = make_collection()
    assert coll.create_index([("title", 1)]) == "title_1"
    assert coll.create_index([("title", 1)]) == "title_1"
    assert coll.create_index([("author", 1), ("published_year", -1)]) == "author_1_published_year_-1"
    assert set(coll.index_information()) == {"_id_", "title_1", "author_1_published_year_-1"}


def test_explain_reports_index_use():
    coll = make_collection()
    before = coll.find({"title": "D"}).explain()
    assert before["queryPlanner"]["winningPlan"]["stage"] == "COLLSCAN"
    assert before["executionStats"]["totalDocsExamined"] == 5
    assert before["executionStats"]["nReturned"] == 1

    coll.create_index([("title", 1)])
    after = coll.find({"title": "D"}).explain()
    plan = after["queryPlanner"]["winningPlan"]
    assert plan["stage"] == "FETCH"
    assert plan["inputStage"]["indexName"] == "title_1"
    assert after["executionStats"]["totalDocsExamined"] == 1
    assert after["executionStats"]["totalKeysExamined"] == 1
    assert after["executionStats"]["nReturned"] == 1


def test_index_follows_updates_and_deletes():
    coll = make_collection()
    coll.create_index("title")
    coll.update_one({"title": "A"}, {"$set": {"title": "AA"}})
    assert list(coll.find({"title": "A"})) == []
    assert titles(coll.find({"title": "AA"})) == ["AA"]
    coll.delete_one({"title": "AA"})
    assert coll.find({"title": "AA"}).explain()["executionStats"]["totalDocsExamined"] == 0


def test_index_on_array_field_matches_each_element():
    coll = Collection()
    coll.insert_many([{"title": "A", "tags": ["x", "y"]}, {"title": "B", "tags": "x"}, {"title": "C", "tags": []}])
    scanned = titles(coll.find({"tags": "x"}))
    assert scanned == ["A", "B"]

    coll.create_index("tags")
    assert titles(coll.find({"tags": "x"})) == scanned
    assert titles(coll.find({"tags": "y"})) == ["A"]
    assert coll.find({"tags": "y"}).explain()["queryPlanner"]["winningPlan"]["stage"] == "FETCH"

    coll.update_one({"title": "A"}, {"$set": {"tags": ["z"]}})
    assert titles(coll.find({"tags": "x"})) == ["B"]
    assert titles(coll.find({"tags": "z"})) == ["A"]
    coll.delete_one({"title": "A"})
    assert list(coll.find({"tags": "z"})) == []


def test_aggregate_group_sort_limit():
    coll = make_collection()
    rows = list(coll.aggregate([
        {"$group": {"_id": "$author", "bookCount": {"$sum": 1}}},
        {"$sort": {"bookCount": -1}},
        {"$limit": 1},
    ]))
    # X and Y tie at two books; X was seen first
    assert rows == [{"_id": "X", "bookCount": 2}]


def test_aggregate_decade_expressions_truncate():
    coll = Collection()
    coll.insert_many([{"published_year": 1984}, {"published_year": 1989}, {"published_year": 2020}, {"published_year": -45}])
    legacy = list(coll.aggregate([
        {"$project": {"decade": {"$subtract": [
            {"$divide": ["$published_year", 10]},
            {"$mod": [{"$divide": ["$published_year", 10]}, 1]},
        ]}}},
        {"$group": {"_id": "$decade", "count": {"$sum": 1}}},
        {"$sort": {"_id": 1}},
    ]))
    assert legacy == [{"_id": -4.0, "count": 1}, {"_id": 198.0, "count": 2}, {"_id": 202.0, "count": 1}]
    trunc = list(coll.aggregate([
        {"$project": {"decade": {"$trunc": {"$divide": ["$published_year", 10]}}}},
        {"$group": {"_id": "$decade", "count": {"$sum": 1}}},
        {"$sort": {"_id": 1}},
    ]))
    assert trunc == legacy


def test_aggregate_rejects_unknown_stage():
    coll = make_collection()
    with pytest.raises(MalformedQueryError):
        list(coll.aggregate([{"$lookup": {}}]))
    with pytest.raises(MalformedQueryError):
        list(coll.aggregate([{"$group": {"_id": "$genre", "x": {"$median": "$price"}}}]))


def test_arithmetic_on_non_numeric_values_is_malformed():
    coll = make_collection()
    decades = [{"$project": {"decade": {"$trunc": {"$divide": ["$published_year", 10]}}}}]
    with pytest.raises(MalformedQueryError):
        list(coll.aggregate(decades))
    with pytest.raises(MalformedQueryError):
        list(coll.aggregate([{"$project": {"x": {"$mod": ["$price", 0]}}}]))
    with pytest.raises(MalformedQueryError):
        list(coll.aggregate([{"$project": {"x": {"$concat": ["$title", "!"]}}}]))
    # missing operands still yield null
    rows = list(coll.aggregate([{"$match": {"title": "A"}}, {"$project": {"_id": 0, "x": {"$add": ["$pages", 1]}}}]))
    assert rows == [{"x": None}]


def test_drop_clears_documents_and_indexes():
    coll = make_collection()
    coll.create_index("title")
    coll.drop()
    assert list(coll.find()) == []
    assert coll.count_documents({}) == 0
    assert set(coll.index_information()) == {"_id_"}
    coll.insert_one({"title": "A"})
    assert titles(coll.find({"title": "A"})) == ["A"]
