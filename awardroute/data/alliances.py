"""Static carrier-to-alliance classification.

Used for:
- tagging provider flights with the alliance they are bookable through
- matching availability groups against a route leg's allowed alliances

Codes are the short tags stored in the backbone path and feeder route tables.
Carriers listed in more than one group resolve to the first group below.
"""

ALLIANCE_MEMBERS: dict[str, list[str]] = {
    # Star Alliance
    "SA": [
        "A3", "AC", "CA", "AI", "NZ", "NH", "OZ", "OS", "AV", "SN", "CM", "OU", "MS",
        "ET", "BR", "LO", "LH", "CL", "ZH", "SQ", "SA", "LX", "TP", "TG", "TK", "UA",
    ],
    # SkyTeam
    "ST": [
        "AR", "AM", "UX", "AF", "CI", "MU", "DL", "GA", "KQ", "ME", "KL", "KE", "SV",
        "SK", "RO", "VN", "VS", "MF",
    ],
    # oneworld
    "OW": [
        "AS", "AA", "BA", "CX", "FJ", "AY", "IB", "JL", "MS", "QF", "QR", "RJ", "AT",
        "UL", "MH", "WY",
    ],
    # Unaligned carriers with their own award programs
    "EY": ["EY"],  # Etihad
    "EK": ["EK"],  # Emirates
    "JX": ["JX"],  # Starlux
    "B6": ["B6"],  # JetBlue
    "GF": ["GF"],  # Gulf Air
    "DE": ["DE"],  # Condor
}

CARRIER_ALLIANCES: dict[str, str] = {}
for _alliance, _carriers in ALLIANCE_MEMBERS.items():
    for _code in _carriers:
        CARRIER_ALLIANCES.setdefault(_code, _alliance)


def get_alliance(carrier_code: str) -> str | None:
    """Get alliance tag by carrier IATA code. Returns None for unmapped carriers."""
    return CARRIER_ALLIANCES.get(carrier_code.upper())


def supported_carriers() -> list[str]:
    """All carriers the availability search is restricted to, in table order."""
    return list(CARRIER_ALLIANCES)
