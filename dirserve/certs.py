"""
Throwaway TLS certificates.

At startup a P-384 authority is generated, used to sign one leaf certificate
and then dropped. Only the leaf is ever handed to the listener. Nothing is
kept once the process exits.
"""
import collections
import datetime
import os
import secrets
import ssl
import tempfile

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

ORGANIZATION = "Dirserve HTTP Server"
AUTHORITY_NAME = "Dirserve HTTP Server CA"
SERIAL_BITS = 128
CLOCK_SKEW = datetime.timedelta(hours=24)
LIFETIME = datetime.timedelta(hours=26280)	# about three years
TLS_VERSION = ssl.TLSVersion.TLSv1_2

CertificateMaterial = collections.namedtuple("CertificateMaterial",
	["key_pem", "cert_pem"])


def random_serial():
	# x509 serials have to be positive
	return secrets.randbelow((1 << SERIAL_BITS) - 1) + 1


def issue_certificate(issuer=None, issuer_key=None):
	"""
	Generate a fresh P-384 key and a certificate for it.

	Without an issuer the certificate is self-signed and can act as the
	authority for a later call.
	"""
	if (issuer is None) != (issuer_key is None):
		raise ValueError("issuer and issuer_key go together")

	key = ec.generate_private_key(ec.SECP384R1())
	is_authority = issuer is None
	attributes = [x509.NameAttribute(NameOID.ORGANIZATION_NAME, ORGANIZATION)]
	if is_authority:
		# leaf and authority must not share a name or the leaf looks self-signed
		attributes.append(
			x509.NameAttribute(NameOID.COMMON_NAME, AUTHORITY_NAME))
	subject = x509.Name(attributes)
	if is_authority:
		issuer_name = subject
		issuer_key = key
	else:
		issuer_name = issuer.subject

	now = datetime.datetime.now(datetime.timezone.utc)
	builder = (
		x509.CertificateBuilder()
		.subject_name(subject)
		.issuer_name(issuer_name)
		.public_key(key.public_key())
		.serial_number(random_serial())
		.not_valid_before(now - CLOCK_SKEW)
		.not_valid_after(now + LIFETIME)
		.add_extension(
			x509.BasicConstraints(ca=is_authority,
				path_length=0 if is_authority else None),
			critical=True)
		.add_extension(
			x509.KeyUsage(
				digital_signature=True,
				content_commitment=False,
				key_encipherment=True,
				data_encipherment=False,
				key_agreement=False,
				key_cert_sign=is_authority,
				crl_sign=False,
				encipher_only=False,
				decipher_only=False,
			),
			critical=True)
		.add_extension(
			x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]),
			critical=False)
		.add_extension(
			x509.SubjectKeyIdentifier.from_public_key(key.public_key()),
			critical=False)
		.add_extension(
			x509.AuthorityKeyIdentifier.from_issuer_public_key(
				issuer_key.public_key()),
			critical=False)
	)
	cert = builder.sign(issuer_key, hashes.SHA256())
	return cert, key


def encode_pem(cert, key):
	key_pem = key.private_bytes(
		encoding=serialization.Encoding.PEM,
		format=serialization.PrivateFormat.TraditionalOpenSSL,
		encryption_algorithm=serialization.NoEncryption(),
	)
	cert_pem = cert.public_bytes(serialization.Encoding.PEM)
	return CertificateMaterial(key_pem, cert_pem)


def mint_chain():
	"""Mint an authority, sign a leaf with it, return only the leaf."""
	authority, authority_key = issue_certificate()
	cert, key = issue_certificate(authority, authority_key)
	return encode_pem(cert, key)


def _write_private(path, data):
	fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
	with os.fdopen(fd, "wb") as f:
		f.write(data)


def server_context(material):
	"""Server-side SSLContext pinned to a single protocol version."""
	context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
	context.minimum_version = TLS_VERSION
	context.maximum_version = TLS_VERSION
	context.verify_mode = ssl.CERT_NONE

	# ssl only loads key material from paths, the files are gone as soon as
	# the chain is loaded
	with tempfile.TemporaryDirectory(prefix="dirserve-") as tmp:
		cert_file = os.path.join(tmp, "cert.pem")
		key_file = os.path.join(tmp, "key.pem")
		_write_private(cert_file, material.cert_pem)
		_write_private(key_file, material.key_pem)
		context.load_cert_chain(certfile=cert_file, keyfile=key_file)
	return context
