"""
Simple simulator: create a product and walk it through its supply chain.
Run:
    python scripts/simulate_journey.py [product_id]
"""
import os
import random
import sys
import time

import requests

API = os.getenv("VERIFRESH_API", "http://localhost:8000")

STOPS = [
    ("Harvested", "Sunny Farm Orchard"),
    ("Packed", "Sunny Farm Packhouse"),
    ("Shipped", "Cold Truck A"),
    ("Received", "Distributor Warehouse"),
    ("Shelved", "VeriFresh Store #12"),
]


def main():
    product_id = int(sys.argv[1]) if len(sys.argv) > 1 else random.randint(1, 1_000_000)

    r = requests.post(f"{API}/products", json={
        "productId": product_id,
        "name": "Mango",
        "farmName": "Sunny Farm",
    })
    print("create:", r.status_code, r.text)
    if r.status_code != 201:
        return

    for status, location in STOPS:
        rr = requests.post(f"{API}/products/{product_id}/logs", json={"status": status, "location": location})
        print("log", status, rr.status_code, rr.text)
        time.sleep(1)

    rr = requests.get(f"{API}/products/{product_id}")
    print("product:", rr.status_code, rr.text)

    rr = requests.get(f"{API}/products/{product_id}/verify")
    print("verify:", rr.status_code, rr.text)


if __name__ == "__main__":
    main()
