"""
Official contact directory served by the contact search.

The directory is just another ResourceStore: organization type, category and
state are folded into the tags so that the usual keyword matching covers
them. Entries are kept in alphabetical order so that insertion order is the
tie-break the store applies.
"""
from typing import Dict, List

from search.resource_store import InMemoryResourceStore


def _contact(id: str, name: str, type: str, category: str, description: str, website: str,
             phone: str, email: str, address: str, city: str, state: str, zip_code: str) -> Dict:
    return {
        "id": id,
        "title": name,
        "description": description,
        "website": website,
        "phone": phone,
        "email": email,
        "address": address,
        "city": city,
        "state": state,
        "zip_code": zip_code,
        "resource_type": type,
        "industry": category,
        "tags": [type.lower(), category.lower(), state.lower(), city.lower()],
        "is_national": True,
    }


CONTACT_DIRECTORY: List[Dict] = [
    _contact("amazon-hq", "Amazon.com, Inc.", "Corporate Headquarters", "Corporate",
             "Global e-commerce and cloud computing company headquarters. Customer service and business inquiries.",
             "amazon.com", "1-888-280-4331", "customer-service@amazon.com",
             "410 Terry Avenue North", "Seattle", "WA", "98109"),
    _contact("apple-support", "Apple Inc.", "Customer Support", "Corporate",
             "Apple customer support for iPhone, iPad, Mac, and other Apple products. "
             "Technical support and warranty services.",
             "apple.com/support", "1-800-275-2273", "support@apple.com",
             "1 Apple Park Way", "Cupertino", "CA", "95014"),
    _contact("california-dmv", "California Department of Motor Vehicles", "State Motor Vehicle Agency", "Government",
             "California DMV for driver licenses, vehicle registration, and motor vehicle services.",
             "dmv.ca.gov", "1-800-777-0133", "customer.service@dmv.ca.gov",
             "2415 1st Avenue", "Sacramento", "CA", "95818"),
    _contact("florida-real-estate", "Florida Real Estate Commission", "State Regulatory Agency", "Government",
             "Official state agency regulating real estate licenses, continuing education, and enforcement in Florida.",
             "myfloridalicense.com/dbpr", "1-850-487-1395", "real.estate@myfloridalicense.com",
             "2601 Blair Stone Road", "Tallahassee", "FL", "32399"),
    _contact("google-support", "Google LLC", "Customer Support", "Corporate",
             "Google customer support for search, advertising, cloud services, and consumer products.",
             "support.google.com", "1-650-253-0000", "support@google.com",
             "1600 Amphitheatre Parkway", "Mountain View", "CA", "94043"),
    _contact("irs-customer-service", "Internal Revenue Service (IRS)", "Federal Tax Agency", "Government",
             "Official U.S. federal tax collection agency. Customer service for tax questions, payments, and returns.",
             "irs.gov", "1-800-829-1040", "help@irs.gov",
             "1111 Constitution Ave NW", "Washington", "DC", "20224"),
    _contact("microsoft-support", "Microsoft Corporation", "Technology Support Center", "Corporate",
             "Microsoft customer support for products, services, and technical assistance. "
             "Enterprise and consumer support.",
             "support.microsoft.com", "1-800-642-7676", "support@microsoft.com",
             "1 Microsoft Way", "Redmond", "WA", "98052"),
    _contact("social-security", "Social Security Administration", "Federal Benefits Agency", "Government",
             "Official U.S. federal agency managing social security benefits, disability, and retirement services.",
             "ssa.gov", "1-800-772-1213", "contact@ssa.gov",
             "6401 Security Blvd", "Baltimore", "MD", "21235"),
    _contact("tesla-hq", "Tesla, Inc.", "Corporate Headquarters", "Corporate",
             "Electric vehicle and clean energy company headquarters. Customer support and investor relations.",
             "tesla.com", "1-650-681-5000", "customerservice@tesla.com",
             "1 Tesla Road", "Austin", "TX", "78725"),
    _contact("texas-dmv", "Texas Department of Motor Vehicles", "State Motor Vehicle Agency", "Government",
             "Official Texas state agency for vehicle registration, titles, licenses, and motor vehicle services.",
             "txdmv.gov", "1-888-368-4689", "webmaster@txdmv.gov",
             "4000 Jackson Ave", "Austin", "TX", "78731"),
]


def contact_directory_store() -> InMemoryResourceStore:
    return InMemoryResourceStore(CONTACT_DIRECTORY)
