import csv
import io
from datetime import date
from typing import Iterable, Optional

from donor_registry.models.donor import Donor

CSV_HEADER = [
    "Name",
    "Contact Number",
    "Address",
    "City",
    "Blood Group",
    "Department",
    "Semester",
    "Last Donation",
    "Next Available",
]


def _format_date(value: Optional[date], placeholder: str) -> str:
    return value.isoformat() if value else placeholder


def donors_to_csv(donors: Iterable[Donor]) -> str:
    """Render donors with the dashboard's export columns."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_HEADER)

    for donor in donors:
        writer.writerow(
            [
                donor.name,
                donor.contact_number,
                donor.address,
                donor.city,
                donor.blood_group,
                donor.department,
                donor.semester,
                _format_date(donor.last_donation, "Never"),
                _format_date(donor.next_available_date, "N/A"),
            ]
        )

    return output.getvalue()
