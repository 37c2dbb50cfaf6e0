from bookstore_queries.pipeline import (
    Avg,
    Derived,
    Group,
    Limit,
    Match,
    Pipeline,
    Project,
    Skip,
    Sort,
    Sum,
    average_price_by_genre,
    books_by_decade,
    top_author,
    truncated_quotient,
)


def test_canned_pipelines_render_to_stage_documents():
    assert average_price_by_genre().to_list() == [
        {"$group": {"_id": "$genre", "avgPrice": {"$avg": "$price"}}},
    ]
    assert top_author().to_list() == [
        {"$group": {"_id": "$author", "bookCount": {"$sum": 1}}},
        {"$sort": {"bookCount": -1}},
        {"$limit": 1},
    ]
    assert books_by_decade().to_list() == [
        {"$project": {"decade": {"$trunc": {"$divide": ["$published_year", 10]}}}},
        {"$group": {"_id": "$decade", "count": {"$sum": 1}}},
        {"$sort": {"_id": 1}},
    ]


def test_stage_variants():
    assert Match({"in_stock": True}).to_stage() == {"$match": {"in_stock": True}}
    assert Group(None, (("n", Sum("pages")),)).to_stage() == {"$group": {"_id": None, "n": {"$sum": "$pages"}}}
    assert Skip(5).to_stage() == {"$skip": 5}
    assert Project(include=("title",), exclude_id=True).to_stage() == {"$project": {"title": 1, "_id": 0}}
    proj = Project(include=("title",), derived=(Derived("d", truncated_quotient("$pages", 100)),))
    assert proj.to_stage() == {"$project": {"title": 1, "d": {"$trunc": {"$divide": ["$pages", 100]}}}}


def test_pipeline_is_immutable_and_chainable():
    base = Pipeline((Group("genre", (("avgPrice", Avg("price")),)),))
    longer = base.then(Sort((("avgPrice", -1),))).then(Limit(3))
    assert len(base) == 1
    assert len(longer) == 3
    assert longer.to_list()[-1] == {"$limit": 3}
