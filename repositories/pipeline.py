"""
Compile EventFilter / QueryPlan into MongoDB query documents.

The pipeline always has the same shape:

    $match -> [$sort timestamp] -> $group -> $sort -> [$limit] -> $project

The optional timestamp sort makes ``$first`` pick the earliest event of each
group, which is what the in-memory store does too. Group keys are always
emitted as an ``_id`` sub-document so the tie-break sort (``_id`` ascending)
orders multi-part keys field by field.
"""

from typing import Any, Dict, List

from schemas.models.query import EventFilter, GroupKey, QueryPlan, SortOrder


def build_match(flt: EventFilter) -> Dict[str, Any]:
    """Build the $match document for a filter."""
    query: Dict[str, Any] = {}

    if len(flt.link_ids) == 1:
        query["link_id"] = flt.link_ids[0]
    elif flt.link_ids:
        query["link_id"] = {"$in": list(flt.link_ids)}

    if flt.owner_id is not None:
        query["owner_id"] = flt.owner_id

    window: Dict[str, Any] = {}
    if flt.start is not None:
        window["$gte"] = flt.start
    if flt.end is not None:
        window["$lt"] = flt.end
    if window:
        query["timestamp"] = window

    for path in flt.present:
        query[path] = {"$ne": None}

    return query


def _key_expr(key: GroupKey) -> Any:
    if key.date_format:
        return {"$dateToString": {"format": key.date_format, "date": f"${key.path}"}}
    return f"${key.path}"


def build_pipeline(plan: QueryPlan) -> List[Dict[str, Any]]:
    """Build the aggregation pipeline for a plan."""
    pipeline: List[Dict[str, Any]] = [{"$match": build_match(plan.filter)}]

    if plan.first:
        pipeline.append({"$sort": {"timestamp": 1}})

    group: Dict[str, Any] = {
        "_id": {key.name: _key_expr(key) for key in plan.group_by},
        "clicks": {"$sum": 1},
    }
    for name, path in plan.first.items():
        group[name] = {"$first": f"${path}"}
    pipeline.append({"$group": group})

    if plan.sort == SortOrder.KEY_ASC:
        pipeline.append({"$sort": {"_id": 1}})
    else:
        pipeline.append({"$sort": {"clicks": -1, "_id": 1}})

    if plan.limit is not None:
        pipeline.append({"$limit": plan.limit})

    project: Dict[str, Any] = {"_id": 0, "clicks": 1}
    for key in plan.group_by:
        project[key.name] = f"$_id.{key.name}"
    for name in plan.first:
        project[name] = 1
    pipeline.append({"$project": project})

    return pipeline
