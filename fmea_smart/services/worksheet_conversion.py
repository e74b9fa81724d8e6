"""
Conversion between the nested legacy worksheet document and the atomic
(one row per item) shape.

Atomic shape (camelCase keys, as served by ``GET /api/fmea?format=atomic``)::

    {
      "fmeaId": "pfm26-m001",
      "l1Structure": {...} | None,
      "l2Structures": [...], "l3Structures": [...],
      "l1Functions": [...], "l2Functions": [...], "l3Functions": [...],
      "failureEffects": [...], "failureModes": [...], "failureCauses": [...],
      "failureLinks": [...], "riskAnalyses": [...], "optimizations": [...],
      "confirmed": {...},
    }

Items without an id in the legacy document get a positional id
(``L2-3``, ``L3-3-1``, ``FE-2`` ...), so rebuilding the same document twice
yields the same rows. Items whose id was already used in the same collection
are dropped.
"""

import logging

from fmea_smart.services.action_priority import ap_for
from fmea_smart.services.snapshot_scoring import _items, _text

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "Your Plant"

ATOMIC_KEYS = (
    "l2Structures", "l3Structures",
    "l1Functions", "l2Functions", "l3Functions",
    "failureEffects", "failureModes", "failureCauses",
    "failureLinks", "riskAnalyses", "optimizations",
)

# legacy document flag → atomic ``confirmed`` key (FmeaConfirmedState.to_dict names)
CONFIRMED_KEYS = (
    ("structureConfirmed", "structureConfirmed"),
    ("l1Confirmed", "l1FunctionConfirmed"),
    ("l2Confirmed", "l2FunctionConfirmed"),
    ("l3Confirmed", "l3FunctionConfirmed"),
    ("failureL1Confirmed", "failureL1Confirmed"),
    ("failureL2Confirmed", "failureL2Confirmed"),
    ("failureL3Confirmed", "failureL3Confirmed"),
    ("failureLinkConfirmed", "failureLinkConfirmed"),
)


def _dicts(value) -> list[dict]:
    return [item for item in _items(value) if isinstance(item, dict)]


def _rating_or_zero(value) -> int:
    """Risk rating as stored in ``riskData``: 1..10, anything else is 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if value != int(value) or not 1 <= value <= 10:
        return 0
    return int(value)


def empty_atomic(fmea_id: str) -> dict:
    out = {"fmeaId": fmea_id, "l1Structure": None}
    for key in ATOMIC_KEYS:
        out[key] = []
    out["confirmed"] = {key: False for _, key in CONFIRMED_KEYS}
    return out


class _AtomicBuilder:
    """Accumulates atomic collections, dropping repeated ids per collection."""

    def __init__(self, fmea_id: str):
        self.fmea_id = fmea_id
        self.out = empty_atomic(fmea_id)
        self._seen = {key: set() for key in ATOMIC_KEYS}

    def add(self, key: str, item: dict) -> dict | None:
        item_id = item["id"]
        if item_id in self._seen[key]:
            logger.debug("Dropping duplicate %s id=%s (fmea=%s)", key, item_id, self.fmea_id)
            return None
        self._seen[key].add(item_id)
        self.out[key].append(item)
        return item

    def find(self, key: str, item_id=None, **match) -> dict | None:
        for item in self.out[key]:
            if item_id is not None and item["id"] == item_id:
                return item
        if match:
            for item in self.out[key]:
                if all(v and item.get(k) == v for k, v in match.items()):
                    return item
        return None


# ═══════════════════════════════════════════════════════════════════════════
#  legacy → atomic
# ═══════════════════════════════════════════════════════════════════════════

def _l1_functions(b: _AtomicBuilder, l1: dict, l1_id):
    for t_idx, type_ in enumerate(_dicts(l1.get("types")), 1):
        category = _text(type_.get("name")) or DEFAULT_CATEGORY
        for f_idx, func in enumerate(_dicts(type_.get("functions")), 1):
            requirements = _dicts(func.get("requirements")) or [None]
            for r_idx, req in enumerate(requirements, 1):
                req = req or {}
                row = b.add("l1Functions", {
                    "id": _text(req.get("id")) or f"L1F-{t_idx}-{f_idx}-{r_idx}",
                    "l1StructId": l1_id,
                    "category": category,
                    "functionName": _text(func.get("name")),
                    "requirement": _text(req.get("name")),
                })
                if row and _text(req.get("failureEffect")):
                    b.add("failureEffects", {
                        "id": f"FE-{row['id']}",
                        "l1FuncId": row["id"],
                        "category": category,
                        "effect": _text(req.get("failureEffect")),
                        "severity": req.get("severity") or 0,
                    })


def _failure_effects(b: _AtomicBuilder, l1: dict):
    for idx, scope in enumerate(_dicts(l1.get("failureScopes")), 1):
        func = b.find("l1Functions", scope.get("reqId"),
                      requirement=_text(scope.get("requirement")))
        if func is None and b.out["l1Functions"]:
            func = b.out["l1Functions"][0]
        b.add("failureEffects", {
            "id": _text(scope.get("id")) or f"FE-{idx}",
            "l1FuncId": func["id"] if func else None,
            "category": _text(scope.get("scope")) or (func or {}).get("category") or DEFAULT_CATEGORY,
            "effect": _text(scope.get("effect")) or _text(scope.get("name")),
            "severity": scope.get("severity") or 0,
        })


def _function_rows(b, key, functions, chars_key, char_field, base_id, parents: dict):
    """L2/L3 functions: one row per characteristic (or one bare row)."""
    for f_idx, func in enumerate(_dicts(functions), 1):
        chars = _dicts(func.get(chars_key)) or [None]
        for c_idx, char in enumerate(chars, 1):
            char = char or {}
            b.add(key, {
                "id": _text(char.get("id")) or f"{base_id}-F{f_idx}-{c_idx}",
                **parents,
                "functionName": _text(func.get("name")),
                char_field: _text(char.get("name")),
                "specialChar": char.get("specialChar") or None,
            })


def _process(b: _AtomicBuilder, p_idx: int, proc: dict, l1_id):
    name, no = _text(proc.get("name")), _text(proc.get("no"))
    if not name and not no:
        return
    l2 = b.add("l2Structures", {
        "id": _text(proc.get("id")) or f"L2-{p_idx}",
        "l1Id": l1_id,
        "no": no,
        "name": name,
        "order": proc.get("order") or p_idx,
    })
    if l2 is None:
        return
    l2_id = l2["id"]

    _function_rows(b, "l2Functions", proc.get("functions"), "productChars",
                   "productChar", l2_id, {"l2StructId": l2_id})

    for w_idx, we in enumerate(_dicts(proc.get("l3")), 1):
        if not _text(we.get("name")):
            continue
        l3 = b.add("l3Structures", {
            "id": _text(we.get("id")) or f"L3-{p_idx}-{w_idx}",
            "l1Id": l1_id,
            "l2Id": l2_id,
            "m4": _text(we.get("m4")) or None,
            "name": _text(we.get("name")),
            "order": we.get("order") or w_idx,
        })
        if l3 is not None:
            _function_rows(b, "l3Functions", we.get("functions"), "processChars",
                           "processChar", l3["id"], {"l3StructId": l3["id"], "l2StructId": l2_id})

    own_funcs = [f for f in b.out["l2Functions"] if f["l2StructId"] == l2_id]
    for m_idx, fm in enumerate(_dicts(proc.get("failureModes")), 1):
        if not _text(fm.get("name")):
            continue
        func = b.find("l2Functions", fm.get("productCharId")) or (own_funcs[0] if own_funcs else None)
        b.add("failureModes", {
            "id": _text(fm.get("id")) or f"FM-{p_idx}-{m_idx}",
            "l2FuncId": func["id"] if func else None,
            "l2StructId": l2_id,
            "productCharId": _text(fm.get("productCharId")) or None,
            "mode": _text(fm.get("name")),
            "specialChar": bool(fm.get("sc")),
        })

    # Causes live on the process; older documents kept them on work elements.
    causes = [(fc, None) for fc in _dicts(proc.get("failureCauses"))]
    for we in _dicts(proc.get("l3")):
        causes.extend((fc, _text(we.get("id"))) for fc in _dicts(we.get("failureCauses")))

    l3_funcs = [f for f in b.out["l3Functions"] if f["l2StructId"] == l2_id]
    for c_idx, (fc, we_id) in enumerate(causes, 1):
        if not _text(fc.get("name")):
            continue
        func = b.find("l3Functions", fc.get("processCharId"))
        if func is None:
            candidates = [f for f in l3_funcs if not we_id or f["l3StructId"] == we_id]
            func = candidates[0] if candidates else None
        b.add("failureCauses", {
            "id": _text(fc.get("id")) or f"FC-{p_idx}-{c_idx}",
            "l3FuncId": func["id"] if func else None,
            "l3StructId": func["l3StructId"] if func else (we_id or None),
            "l2StructId": l2_id,
            "cause": _text(fc.get("name")),
            "occurrence": fc.get("occurrence"),
        })


def _failure_links(b: _AtomicBuilder, legacy: dict):
    for old in _dicts(legacy.get("failureLinks")):
        fm = b.find("failureModes", old.get("fmId"), mode=_text(old.get("fmText")))
        fe = b.find("failureEffects", old.get("feId"), effect=_text(old.get("feText")))
        fc = b.find("failureCauses", old.get("fcId"), cause=_text(old.get("fcText")))
        if not (fm and fe and fc):
            logger.warning(
                "Dropping unresolved failure link fm=%s fe=%s fc=%s (fmea=%s)",
                old.get("fmId"), old.get("feId"), old.get("fcId"), b.fmea_id,
            )
            continue
        b.add("failureLinks", {
            "id": f"LK-{fm['id']}-{fe['id']}-{fc['id']}",
            "fmId": fm["id"],
            "feId": fe["id"],
            "fcId": fc["id"],
        })


def _risk_analyses(b: _AtomicBuilder, legacy: dict):
    risk_data = legacy.get("riskData")
    if not isinstance(risk_data, dict) or not risk_data:
        return
    for link in b.out["failureLinks"]:
        key = f"{link['fmId']}-{link['fcId']}"
        occurrence = _rating_or_zero(risk_data.get(f"risk-{key}-O"))
        detection = _rating_or_zero(risk_data.get(f"risk-{key}-D"))
        fe = b.find("failureEffects", link["feId"]) or {}
        severity = _rating_or_zero(fe.get("severity"))
        prevention = risk_data.get(f"prevention-{key}")
        detection_ctl = risk_data.get(f"detection-{key}")
        prevention = prevention if isinstance(prevention, str) else None
        detection_ctl = detection_ctl if isinstance(detection_ctl, str) else None

        if not (severity or occurrence or detection or prevention or detection_ctl):
            continue
        b.add("riskAnalyses", {
            "id": f"RA-{link['id']}",
            "linkId": link["id"],
            "severity": severity,
            "occurrence": occurrence,
            "detection": detection,
            "ap": ap_for(severity, occurrence, detection),
            "preventionControl": prevention,
            "detectionControl": detection_ctl,
        })


def _optimizations(b: _AtomicBuilder, legacy: dict):
    risk_ids = {r["id"] for r in b.out["riskAnalyses"]}
    for idx, opt in enumerate(_dicts(legacy.get("optimizations")), 1):
        if opt.get("riskId") not in risk_ids:
            continue
        item = {k: v for k, v in opt.items() if v is not None}
        item["id"] = _text(opt.get("id")) or f"OPT-{idx}"
        b.add("optimizations", item)


def legacy_to_atomic(fmea_id: str, legacy) -> dict:
    """Normalise a legacy worksheet document into the atomic shape."""
    b = _AtomicBuilder(fmea_id)
    if not isinstance(legacy, dict):
        return b.out

    l1 = legacy.get("l1") if isinstance(legacy.get("l1"), dict) else {}
    l1_id = _text(l1.get("id")) or "L1"
    b.out["l1Structure"] = {
        "id": l1_id,
        "name": _text(l1.get("name")),
        "confirmed": bool(legacy.get("structureConfirmed")),
    }

    _l1_functions(b, l1, l1_id)
    _failure_effects(b, l1)
    for p_idx, proc in enumerate(_dicts(legacy.get("l2")), 1):
        _process(b, p_idx, proc, l1_id)
    _failure_links(b, legacy)
    _risk_analyses(b, legacy)
    _optimizations(b, legacy)

    b.out["confirmed"] = {key: bool(legacy.get(flag)) for flag, key in CONFIRMED_KEYS}
    return b.out


# ═══════════════════════════════════════════════════════════════════════════
#  atomic → legacy
# ═══════════════════════════════════════════════════════════════════════════

def _group(rows, key):
    """Group rows by ``row[key]`` preserving first-seen order."""
    groups: dict = {}
    for row in rows:
        groups.setdefault(row.get(key) or "", []).append(row)
    return groups


def atomic_to_legacy(atomic) -> dict | None:
    """
    Rebuild a legacy document from the atomic shape.

    Returns None when there is nothing to rebuild (no L1 row and no process).
    """
    if not isinstance(atomic, dict):
        return None
    l1_row = atomic.get("l1Structure") if isinstance(atomic.get("l1Structure"), dict) else None
    l2_rows = _dicts(atomic.get("l2Structures"))
    if l1_row is None and not l2_rows:
        return None

    l1_funcs = _dicts(atomic.get("l1Functions"))
    func_by_id = {f["id"]: f for f in l1_funcs}
    confirmed = atomic.get("confirmed") if isinstance(atomic.get("confirmed"), dict) else {}

    types = []
    for category, rows in _group(l1_funcs, "category").items():
        functions = []
        for name, funcs in _group(rows, "functionName").items():
            functions.append({
                "id": funcs[0]["id"],
                "name": name,
                "requirements": [{"id": f["id"], "name": f.get("requirement") or ""} for f in funcs],
            })
        types.append({"id": f"T-{category}", "name": category, "functions": functions})

    failure_scopes = []
    for fe in _dicts(atomic.get("failureEffects")):
        func = func_by_id.get(fe.get("l1FuncId")) or {}
        failure_scopes.append({
            "id": fe["id"],
            "reqId": fe.get("l1FuncId"),
            "requirement": func.get("requirement") or "",
            "scope": func.get("category") or fe.get("category") or DEFAULT_CATEGORY,
            "effect": fe.get("effect") or "",
            "severity": fe.get("severity"),
        })

    l2_funcs = _group(_dicts(atomic.get("l2Functions")), "l2StructId")
    l3_structs = _group(_dicts(atomic.get("l3Structures")), "l2Id")
    l3_funcs = _group(_dicts(atomic.get("l3Functions")), "l3StructId")
    modes = _group(_dicts(atomic.get("failureModes")), "l2StructId")
    causes = _group(_dicts(atomic.get("failureCauses")), "l2StructId")

    processes = []
    for l2 in sorted(l2_rows, key=lambda r: r.get("order") or 0):
        processes.append({
            "id": l2["id"],
            "no": l2.get("no") or "",
            "name": l2.get("name") or "",
            "order": l2.get("order") or 0,
            "functions": [
                {"id": funcs[0]["id"], "name": name, "productChars": [
                    {"id": f["id"], "name": f.get("productChar") or "", "specialChar": f.get("specialChar")}
                    for f in funcs
                ]}
                for name, funcs in _group(l2_funcs.get(l2["id"], []), "functionName").items()
            ],
            "failureModes": [
                {"id": m["id"], "name": m.get("mode") or "", "sc": bool(m.get("specialChar")),
                 "productCharId": m.get("productCharId") or ""}
                for m in modes.get(l2["id"], [])
            ],
            "failureCauses": [
                {"id": c["id"], "name": c.get("cause") or "", "occurrence": c.get("occurrence"),
                 "processCharId": c.get("l3FuncId") or ""}
                for c in causes.get(l2["id"], [])
            ],
            "l3": [
                {
                    "id": l3["id"],
                    "m4": l3.get("m4") or "",
                    "name": l3.get("name") or "",
                    "order": l3.get("order") or 0,
                    "functions": [
                        {"id": funcs[0]["id"], "name": name, "processChars": [
                            {"id": f["id"], "name": f.get("processChar") or "",
                             "specialChar": f.get("specialChar")}
                            for f in funcs
                        ]}
                        for name, funcs in _group(l3_funcs.get(l3["id"], []), "functionName").items()
                    ],
                    "failureCauses": [],
                }
                for l3 in sorted(l3_structs.get(l2["id"], []), key=lambda r: r.get("order") or 0)
            ],
        })

    mode_by_id = {m["id"]: m for m in _dicts(atomic.get("failureModes"))}
    effect_by_id = {e["id"]: e for e in _dicts(atomic.get("failureEffects"))}
    cause_by_id = {c["id"]: c for c in _dicts(atomic.get("failureCauses"))}
    links = _dicts(atomic.get("failureLinks"))
    failure_links = []
    for link in links:
        fm = mode_by_id.get(link.get("fmId")) or {}
        fe = effect_by_id.get(link.get("feId")) or {}
        fc = cause_by_id.get(link.get("fcId")) or {}
        failure_links.append({
            "fmId": link.get("fmId"),
            "fmText": fm.get("mode") or "",
            "feId": link.get("feId"),
            "feScope": fe.get("category"),
            "feText": fe.get("effect"),
            "severity": fe.get("severity"),
            "fcId": link.get("fcId"),
            "fcText": fc.get("cause"),
        })

    link_by_id = {link["id"]: link for link in links}
    risk_data = {}
    for risk in _dicts(atomic.get("riskAnalyses")):
        link = link_by_id.get(risk.get("linkId"))
        if link is None:
            continue
        key = f"{link.get('fmId')}-{link.get('fcId')}"
        risk_data[f"risk-{key}-O"] = risk.get("occurrence") or 0
        risk_data[f"risk-{key}-D"] = risk.get("detection") or 0
        if risk.get("preventionControl"):
            risk_data[f"prevention-{key}"] = risk["preventionControl"]
        if risk.get("detectionControl"):
            risk_data[f"detection-{key}"] = risk["detectionControl"]

    legacy = {
        "fmeaId": atomic.get("fmeaId"),
        "l1": {
            "id": (l1_row or {}).get("id") or "L1",
            "name": (l1_row or {}).get("name") or "",
            "types": types,
            "failureScopes": failure_scopes,
        },
        "l2": processes,
        "failureLinks": failure_links,
        "riskData": risk_data,
        "optimizations": _dicts(atomic.get("optimizations")),
    }
    for flag, key in CONFIRMED_KEYS:
        legacy[flag] = bool(confirmed.get(key))
    return legacy
