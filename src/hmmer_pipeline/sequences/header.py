"""Free-text sequence header parsing.

Recognizes UniProt FASTA headers (``sp|P69905|HBA_HUMAN ... OS=... OX=...``)
and NCBI-style headers with a trailing ``[Organism]``. Anything else yields
the first token as the identifier and the remainder as description.
"""

import re

UNIPROT_ID_RE = re.compile(r"^(?P<db>sp|tr)\|(?P<accession>[^|]+)\|(?P<entry_name>\S+)$")
UNIPROT_TAG_RE = re.compile(r"\b(OS|OX|GN|PE|SV)=")
NCBI_ORGANISM_RE = re.compile(r"\[(?P<organism>[^\[\]]+)\]\s*$")


def _split_uniprot_tags(text: str) -> tuple[str, dict[str, str]]:
    """Split ``desc OS=... OX=...`` into the description and a tag dict."""
    matches = list(UNIPROT_TAG_RE.finditer(text))
    if not matches:
        return text.strip(), {}

    description = text[:matches[0].start()].strip()
    tags = {}
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        tags[match.group(1)] = text[match.end():end].strip()
    return description, tags


def parse_header(header: str) -> dict:
    """Parse a sequence header into metadata fields.

    Returns:
        Dict with ``identifier`` and ``description`` always present, plus
        whichever of ``accession``, ``entry_name``, ``database``,
        ``organism``, ``taxon_id`` (int) and ``gene`` the header carries.
    """
    header = (header or "").strip().lstrip(">")
    if not header:
        return {"identifier": "", "description": ""}

    identifier, _, rest = header.partition(" ")
    metadata: dict = {"identifier": identifier}

    match = UNIPROT_ID_RE.match(identifier)
    if match:
        metadata["database"] = "swissprot" if match.group("db") == "sp" else "trembl"
        metadata["accession"] = match.group("accession")
        metadata["entry_name"] = match.group("entry_name")

    description, tags = _split_uniprot_tags(rest)
    if tags:
        if "OS" in tags:
            metadata["organism"] = tags["OS"]
        if tags.get("OX", "").isdigit():
            metadata["taxon_id"] = int(tags["OX"])
        if "GN" in tags:
            metadata["gene"] = tags["GN"]
    else:
        organism = NCBI_ORGANISM_RE.search(description)
        if organism:
            metadata["organism"] = organism.group("organism").strip()
            description = description[:organism.start()].strip()
        metadata.setdefault("accession", identifier)

    metadata["description"] = description
    return metadata


def taxon_id_from_header(header: str | None) -> int | None:
    """Return the OX= taxon id embedded in a header or description, if any."""
    if not header:
        return None
    _, tags = _split_uniprot_tags(header)
    ox = tags.get("OX", "")
    return int(ox) if ox.isdigit() else None
