EXACT_TYPES = {
    "boolean": "bool",
    "bool": "bool",
    "date": "date",
    "datetime": "datetime",
    "timestamp": "datetime",
    "json": "Any",
}


def _affinity(native_type: str) -> str:
    # https://www.sqlite.org/datatype3.html#determination_of_column_affinity
    if not native_type:
        return "Any"
    if "int" in native_type:
        return "int"
    if any(token in native_type for token in ("char", "clob", "text")):
        return "str"
    if "blob" in native_type:
        return "bytes"
    if any(token in native_type for token in ("real", "floa", "doub", "numeric", "decimal")):
        return "float"
    return "Any"


def map_native_type(native_type: str, nullable: bool = False) -> str:
    """Map a declared column type to a Python annotation string"""
    base = native_type.lower().split("(", 1)[0].strip()
    py_type = EXACT_TYPES.get(base) or _affinity(base)
    if nullable and py_type != "Any":
        return f"Optional[{py_type}]"
    return py_type
