"""
Manual smoke run against a live server (python manage.py runserver), not part of the test suite.
Walks through signup -> login -> upload -> list -> rename -> favorite -> archive -> comment -> share -> delete.
"""
import json
import os
from datetime import datetime

import requests

BASE_URL = os.environ.get("PIXEL_ARCHIVE_URL", "http://localhost:8000/api")


def print_response(response, title):
    print(f"\n=== {title} ===")
    print(f"Status Code: {response.status_code}")
    try:
        print("Response:", json.dumps(response.json(), indent=2))
    except ValueError:
        print("Response:", response.text)
    print("=" * 50)


def signup_and_login(username, password):
    r = requests.post(f"{BASE_URL}/auth/signup/", json={"username": username, "password": password})
    print_response(r, "Signup")
    r = requests.post(f"{BASE_URL}/auth/login/", json={"username": username, "password": password})
    print_response(r, "Login")
    return r.json().get("userId")


def list_files(user_id, folder="root"):
    r = requests.get(f"{BASE_URL}/files/", params={"currentFolder": folder}, headers={"UserId": user_id})
    print_response(r, f"List Files ({folder})")
    return r


def upload_file(user_id, add_to_gallery=True):
    content = f"Smoke test file created at {datetime.now()}".encode()
    files = {"file": ("smoke_test.txt", content, "text/plain")}
    data = {"addToGallery": "true" if add_to_gallery else "false"}
    r = requests.post(f"{BASE_URL}/files/", files=files, data=data, headers={"UserId": user_id})
    print_response(r, "Upload File")
    return r


def main():
    print("Starting API smoke run...")
    user_id = signup_and_login(f"smoke-{datetime.now():%H%M%S}", "smoke-password")
    if not user_id:
        print("Login failed, skipping remaining steps")
        return
    headers = {"UserId": user_id}

    upload_response = upload_file(user_id)
    if upload_response.status_code != 201:
        print("File upload failed, skipping remaining steps")
        return
    unique_name = upload_response.json()["uniqueName"]
    item_url = f"{BASE_URL}/files/{unique_name}/"

    list_files(user_id)
    print_response(requests.put(item_url, json={"newName": "renamed"}, headers=headers), "Rename")
    print_response(requests.patch(item_url, json={"isFavorite": True}, headers=headers), "Favorite")
    list_files(user_id, "favorites")
    print_response(requests.patch(item_url, json={"inGallery": False}, headers=headers), "Move To Archive")
    list_files(user_id, "archive")
    print_response(requests.post(f"{item_url}comments/", json={"content": "nice"}, headers=headers), "Comment")
    print_response(requests.get(f"{item_url}comments/", headers=headers), "List Comments")
    print_response(requests.post(f"{item_url}share/", json={}, headers=headers), "Share")
    print_response(requests.get(f"{item_url}metadata/", headers=headers), "Metadata")
    print_response(requests.delete(item_url, headers=headers), "Delete")
    list_files(user_id, "archive")


if __name__ == "__main__":
    main()
