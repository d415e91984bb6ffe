from schemas import Product

SAMPLE_PRODUCTS = [
    Product(
        name="RevMax Pro-S 10W-40 Full Synthetic",
        price=210000,
        weight_gram=920,
        length_cm=6,
        width_cm=6,
        height_cm=24,
        stock=18,
        images=["https://images.unsplash.com/photo-1601562235348-1f61c7cb276a?auto=format&fit=crop&w=800&q=80"],
    ),
    Product(
        name="StreetGuard S-Series Brake Pads",
        price=165000,
        weight_gram=520,
        length_cm=10,
        width_cm=8,
        height_cm=4,
        stock=32,
        images=["https://images.unsplash.com/photo-1523961131990-5ea7c61b2107?auto=format&fit=crop&w=800&q=80"],
    ),
    Product(
        name="SparkForce Iridium Spark Plug Pack",
        price=98000,
        weight_gram=140,
        length_cm=9,
        width_cm=3,
        height_cm=3,
        stock=48,
        images=["https://images.unsplash.com/photo-1519641471654-76ce0107ad1b?auto=format&fit=crop&w=800&q=80"],
    ),
]
