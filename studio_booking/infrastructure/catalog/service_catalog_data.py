from __future__ import annotations

from studio_booking.domain.entities.service_offering import ServiceOffering

# Prices in paise. Durations use the upper end of the advertised range.
SERVICE_CATALOG: dict[int, ServiceOffering] = {
    1: ServiceOffering(
        id=1,
        name="Wedding Photography",
        category="photography",
        price=5_000_000,
        duration_minutes=600,
        description="Complete wedding photography package with pre-wedding, ceremony, and reception coverage",
        features=(
            "Pre-wedding consultation",
            "Full day coverage",
            "High-resolution edited photos",
            "Online gallery",
            "Print release",
        ),
        is_popular=True,
    ),
    2: ServiceOffering(
        id=2,
        name="Portrait Session",
        category="photography",
        price=800_000,
        duration_minutes=120,
        description="Professional portrait photography for individuals, couples, or families",
        features=(
            "Studio or outdoor location",
            "20-30 edited photos",
            "Online gallery",
            "Print release",
            "Wardrobe consultation",
        ),
    ),
    3: ServiceOffering(
        id=3,
        name="Event Photography",
        category="photography",
        price=2_500_000,
        duration_minutes=360,
        description="Corporate events, parties, and special occasions photography",
        features=(
            "Event coverage",
            "Candid and posed shots",
            "Quick turnaround",
            "Online gallery",
            "High-resolution images",
        ),
    ),
    4: ServiceOffering(
        id=4,
        name="Product Photography",
        category="photography",
        price=500_000,
        duration_minutes=180,
        description="Professional product photography for e-commerce and marketing",
        features=(
            "Multiple angles",
            "White background",
            "Lifestyle shots",
            "High-resolution images",
            "Quick delivery",
        ),
    ),
    5: ServiceOffering(
        id=5,
        name="Wedding Videography",
        category="videography",
        price=7_500_000,
        duration_minutes=600,
        description="Cinematic wedding videography with highlight reel and full ceremony",
        features=(
            "Cinematic highlights",
            "Full ceremony recording",
            "Drone footage (if permitted)",
            "4K quality",
            "Music and editing",
        ),
        is_popular=True,
    ),
    6: ServiceOffering(
        id=6,
        name="Commercial Photography",
        category="photography",
        price=1_500_000,
        duration_minutes=240,
        description="Professional photography for businesses, marketing, and branding",
        features=(
            "Brand-focused shots",
            "Team photography",
            "Office/location shots",
            "Marketing materials",
            "Commercial license",
        ),
    ),
}
