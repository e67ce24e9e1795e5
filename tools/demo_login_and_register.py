import json, sys, requests
from docauth.assertion import sign_assertion

BASE = "http://127.0.0.1:8000"
path = sys.argv[1] if len(sys.argv) > 1 else __file__

ident = requests.get(BASE + "/generate-did").json()
did = ident["did"]
print("DID:", did)

challenge = requests.get(BASE + f"/login-challenge/{did}").json()["challenge"]
# Signed locally; the private key is never sent to the server.
jwt = sign_assertion(did, challenge, ident["privateKeyJwk"])

login = requests.post(BASE + "/verify-signature", json={"jwt": jwt}).json()
print("Login:", json.dumps(login, indent=2))

headers = {"Authorization": "Bearer " + login["session_token"]}
with open(path, "rb") as f:
    added = requests.post(BASE + "/add-document", files={"file": f}, headers=headers).json()
print("Added:", json.dumps(added, indent=2))

with open(path, "rb") as f:
    found = requests.post(BASE + "/verify-document", files={"file": f}).json()
print("Verify:", json.dumps(found, indent=2))

replay = requests.post(BASE + "/verify-signature", json={"jwt": jwt})
print("Replay:", replay.status_code, replay.text)
