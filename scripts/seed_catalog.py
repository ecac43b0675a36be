#!/usr/bin/env python3
"""Seed the starter MSP catalogue: categories, tools, and three baselines.

Seed an empty database:
    python scripts/seed_catalog.py

Wipe baselines, tools and categories first:
    python scripts/seed_catalog.py --reset

Refuses to touch a non-empty catalogue without --reset. Baselines still
assigned to customers cannot be reset.
"""

import argparse
import sys

from sqlalchemy.orm import Session

from stacktracker.database import SessionLocal
from stacktracker.models import Baseline, Category, Customer, Tool

CATEGORIES = [
    ("RMM", "Remote Monitoring and Management"),
    ("PSA", "Professional Services Automation"),
    ("Deployment", "Software Deployment & Patching"),
    ("MDM", "Mobile Device Management"),
    ("IAM", "Identity & Access Management"),
    ("Endpoint Security", "Antivirus & EDR"),
    ("Email Security", "Email Protection & Filtering"),
    ("Web Filtering", "DNS & Content Filtering"),
    ("Backup & DR", "Backup and Disaster Recovery"),
    ("Network", "Network Management"),
    ("Monitoring", "Infrastructure Monitoring"),
    ("Documentation", "IT Documentation"),
    ("SIEM", "Security Information & Event Management"),
    ("Security Awareness", "Security Awareness Training"),
    ("ITDR", "Identity Threat Detection & Response"),
    ("Password Management", "Password Vaults"),
]

# (name, vendor, category, tags)
TOOLS = [
    ("Datto RMM", "Datto", "RMM", []),
    ("NinjaOne RMM", "NinjaOne", "RMM", []),
    ("Syncro", "Syncro", "RMM", []),
    ("Atera", "Atera", "RMM", []),
    ("ConnectWise Manage", "ConnectWise", "PSA", []),
    ("Syncro PSA", "Syncro", "PSA", []),
    ("Atera PSA", "Atera", "PSA", []),
    ("PDQ Deploy", "PDQ", "Deployment", []),
    ("NinjaOne Patching", "NinjaOne", "Deployment", []),
    ("Addigy", "Addigy", "MDM", ["Apple"]),
    ("Kandji", "Kandji", "MDM", ["Apple"]),
    ("Jamf", "Jamf", "MDM", ["Apple"]),
    ("NinjaOne MDM", "NinjaOne", "MDM", []),
    ("Intune", "Microsoft", "MDM", []),
    ("Microsoft Entra ID", "Microsoft", "IAM", []),
    ("JumpCloud", "JumpCloud", "IAM", []),
    ("Okta", "Okta", "IAM", []),
    ("SentinelOne", "SentinelOne", "Endpoint Security", ["EDR"]),
    ("CrowdStrike", "CrowdStrike", "Endpoint Security", ["EDR"]),
    ("Huntress", "Huntress", "Endpoint Security", ["EDR"]),
    ("Webroot", "OpenText", "Endpoint Security", ["AV"]),
    ("ESET", "ESET", "Endpoint Security", ["AV"]),
    ("Mailprotector CloudFilter", "Mailprotector", "Email Security", []),
    ("Mailprotector Bracket", "Mailprotector", "Email Security", []),
    ("Mailprotector Secure Store", "Mailprotector", "Email Security", []),
    ("Barracuda", "Barracuda", "Email Security", []),
    ("Microsoft Defender for Office 365", "Microsoft", "Email Security", []),
    ("DNSFilter", "DNSFilter", "Web Filtering", []),
    ("Cisco Umbrella", "Cisco", "Web Filtering", []),
    ("Webroot DNS Protection", "OpenText", "Web Filtering", []),
    ("Datto BCDR", "Datto", "Backup & DR", []),
    ("Veeam", "Veeam", "Backup & DR", []),
    ("Acronis", "Acronis", "Backup & DR", []),
    ("Axcient", "Axcient", "Backup & DR", []),
    ("Ubiquiti UniFi", "Ubiquiti", "Network", []),
    ("Meraki", "Cisco", "Network", []),
    ("Fortinet", "Fortinet", "Network", []),
    ("Datto Networking", "Datto", "Monitoring", []),
    ("Auvik", "Auvik", "Monitoring", []),
    ("PRTG", "Paessler", "Monitoring", []),
    ("IT Glue", "Kaseya", "Documentation", []),
    ("Hudu", "Hudu", "Documentation", []),
    ("Confluence", "Atlassian", "Documentation", []),
    ("Arctic Wolf", "Arctic Wolf", "SIEM", []),
    ("Huntress MDR", "Huntress", "SIEM", []),
    ("Blumira", "Blumira", "SIEM", []),
    ("KnowBe4", "KnowBe4", "Security Awareness", []),
    ("Proofpoint Security Awareness", "Proofpoint", "Security Awareness", []),
    ("Huntress ITDR", "Huntress", "ITDR", []),
    ("Semperis", "Semperis", "ITDR", []),
    ("1Password", "1Password", "Password Management", []),
    ("Keeper", "Keeper", "Password Management", []),
    ("Bitwarden", "Bitwarden", "Password Management", []),
]

BASELINES = [
    {
        "name": "SMB Standard",
        "description": "Core stack for small-medium businesses",
        "required": [
            "NinjaOne RMM", "Microsoft Entra ID", "SentinelOne",
            "Mailprotector CloudFilter", "DNSFilter", "Datto BCDR", "KnowBe4",
        ],
        "optional": ["ConnectWise Manage", "IT Glue", "Huntress"],
    },
    {
        "name": "Compliance Plus",
        "description": "Enhanced stack for compliance-driven organizations",
        "required": [
            "NinjaOne RMM", "ConnectWise Manage", "Microsoft Entra ID",
            "SentinelOne", "Mailprotector CloudFilter", "Mailprotector Bracket",
            "DNSFilter", "Datto BCDR", "Arctic Wolf", "KnowBe4", "IT Glue",
            "1Password",
        ],
        "optional": ["Huntress ITDR", "Microsoft Defender for Office 365"],
    },
    {
        "name": "Co-Managed IT",
        "description": "Stack for organizations with internal IT teams",
        "required": [
            "NinjaOne RMM", "Microsoft Entra ID", "SentinelOne", "DNSFilter",
            "Veeam", "KnowBe4",
        ],
        "optional": ["Intune", "Confluence", "PRTG"],
    },
]


class SeedError(RuntimeError):
    pass


def seed_catalog(db: Session, reset: bool = False) -> dict:
    """Insert the starter catalogue. Returns counts per entity."""
    existing = db.query(Category).count() + db.query(Tool).count() + db.query(Baseline).count()
    if existing and not reset:
        raise SeedError("Catalogue is not empty; pass --reset to replace it")

    if reset:
        if db.query(Customer).count():
            raise SeedError("Customers still reference baselines; cannot reset")
        db.query(Baseline).delete()
        db.query(Tool).delete()
        db.query(Category).delete()
        db.flush()

    cat_ids = {}
    for i, (name, description) in enumerate(CATEGORIES, start=1):
        cat = Category(name=name, description=description, sort_order=i)
        db.add(cat)
        db.flush()
        cat_ids[name] = cat.id

    tool_ids = {}
    for name, vendor, category, tags in TOOLS:
        tool = Tool(name=name, vendor=vendor, category_id=cat_ids[category], tags=list(tags))
        db.add(tool)
        db.flush()
        tool_ids[name] = tool.id

    for entry in BASELINES:
        db.add(Baseline(
            name=entry["name"],
            description=entry["description"],
            required_tool_ids=[tool_ids[n] for n in entry["required"]],
            optional_tool_ids=[tool_ids[n] for n in entry["optional"]],
        ))

    db.commit()
    return {"categories": len(CATEGORIES), "tools": len(TOOLS), "baselines": len(BASELINES)}


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Seed the starter tool catalogue")
    parser.add_argument("--reset", action="store_true", help="clear baselines, tools and categories first")
    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        counts = seed_catalog(db, reset=args.reset)
    except SeedError as e:
        db.rollback()
        print(f"ERROR: {e}")
        return 1
    finally:
        db.close()

    print("Seed completed successfully!")
    for entity, n in counts.items():
        print(f"  - {n} {entity}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
